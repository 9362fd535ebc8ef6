"""Helpers to compute visibility deltas and suppressed answers.

Exposes a single function that computes now_visible, now_hidden, and the list
of suppressed answers using a caller-provided check for answer existence.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, NamedTuple


class VisibilityDelta(NamedTuple):
    now_visible: List[str]
    now_hidden: List[str]
    suppressed_answers: List[str]


def compute_visibility_delta(
    pre_visible: Iterable[str],
    post_visible: Iterable[str],
    has_answer: Callable[[str], bool],
) -> VisibilityDelta:
    """Compute visibility delta and suppressed answers.

    - now_visible: questions newly visible (in post but not in pre)
    - now_hidden: questions newly hidden (in pre but not in post)
    - suppressed_answers: subset of now_hidden that currently hold an answer

    Suppressed answers stay in the answer map; hidden questions are simply
    exempt from validation until they become visible again.
    """
    pre_set = {str(qid) for qid in pre_visible}
    post_set = {str(qid) for qid in post_visible}

    now_visible = sorted(post_set - pre_set)
    now_hidden = sorted(pre_set - post_set)
    suppressed = [qid for qid in now_hidden if has_answer(qid)]
    return VisibilityDelta(now_visible, now_hidden, suppressed)


__all__ = ["VisibilityDelta", "compute_visibility_delta"]
