# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Geometric grouping of extracted candidates.

Adjacent candidates on the same line are merged into one candidate, and
every remaining candidate is annotated with the text of its neighbours so
the classifier has context to disambiguate labels.
"""

import logging
import math
import time
from dataclasses import replace
from functools import cmp_to_key
from typing import Any, Dict, List, Optional

from formfill_common.models import Candidate

logger = logging.getLogger(__name__)

DEFAULT_SAME_LINE_TOLERANCE = 0.01
DEFAULT_ADJACENT_GAP = 0.03
DEFAULT_NEARBY_DISTANCE = 0.10
DEFAULT_LINE_BREAK_THRESHOLD = 0.02


def center_distance(a: Candidate, b: Candidate) -> float:
    """Euclidean distance between box centers in normalized page units."""
    ax, ay = a.bbox.center
    bx, by = b.bbox.center
    return math.hypot(bx - ax, by - ay)


class CandidateGrouper:
    """Merges same-line neighbours and computes nearby-text context."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.same_line_tolerance = float(config.get("same_line_tolerance", DEFAULT_SAME_LINE_TOLERANCE))
        self.adjacent_gap = float(config.get("adjacent_gap", DEFAULT_ADJACENT_GAP))
        self.nearby_distance = float(config.get("nearby_distance", DEFAULT_NEARBY_DISTANCE))
        self.line_break_threshold = float(config.get("line_break_threshold", DEFAULT_LINE_BREAK_THRESHOLD))

    def group(self, candidates: List[Candidate]) -> List[Candidate]:
        """
        Merge, annotate and order candidates.

        The input list is not modified; new Candidate objects are returned.
        The result depends only on the candidates themselves, not on the
        order they were supplied in.
        """
        t0 = time.time()
        merged = self.merge_lines(candidates)
        ordered = sorted(merged, key=cmp_to_key(self._reading_order))
        annotated = self.annotate_nearby(ordered)
        logger.info(
            f"Grouped {len(candidates)} candidates into {len(annotated)} "
            f"in {time.time() - t0:.2f} seconds"
        )
        return annotated

    def merge_lines(self, candidates: List[Candidate]) -> List[Candidate]:
        """
        Greedy left-to-right merge of same-line, horizontally adjacent candidates.

        Each unconsumed candidate anchors a chain; the chain repeatedly absorbs
        the leftmost unconsumed candidate on the anchor's line that starts
        within ``adjacent_gap`` of the chain's right edge. Consumed candidates
        are never reconsidered.
        """
        ordered = sorted(
            candidates,
            key=lambda c: (c.bbox.page, c.bbox.x, c.bbox.center[1], c.id),
        )
        consumed = [False] * len(ordered)
        results = []

        for i, anchor in enumerate(ordered):
            if consumed[i]:
                continue
            consumed[i] = True
            chain = [anchor]
            anchor_cy = anchor.bbox.center[1]
            bbox = anchor.bbox
            current_x = anchor.bbox.x

            extended = True
            while extended:
                extended = False
                for j in range(i + 1, len(ordered)):
                    if consumed[j]:
                        continue
                    other = ordered[j]
                    if other.bbox.page != anchor.bbox.page:
                        continue
                    if abs(other.bbox.center[1] - anchor_cy) >= self.same_line_tolerance:
                        continue
                    if other.bbox.x < current_x or abs(other.bbox.x - bbox.right) >= self.adjacent_gap:
                        continue
                    consumed[j] = True
                    chain.append(other)
                    bbox = bbox.union(other.bbox)
                    current_x = other.bbox.x
                    extended = True
                    break

            if len(chain) == 1:
                results.append(anchor)
            else:
                results.append(Candidate(
                    id=f"merged-{anchor.id}",
                    raw_text=" ".join(c.raw_text for c in chain),
                    confidence=min(c.confidence for c in chain),
                    bbox=bbox,
                    nearby_text=[],
                ))

        merges = len(candidates) - len(results)
        if merges:
            logger.debug(f"Merged {merges} same-line candidates")
        return results

    def annotate_nearby(self, candidates: List[Candidate]) -> List[Candidate]:
        """Return copies carrying the text of same-page candidates within nearby_distance."""
        annotated = []
        for candidate in candidates:
            nearby = [
                other.raw_text
                for other in candidates
                if other.id != candidate.id
                and other.bbox.page == candidate.bbox.page
                and center_distance(candidate, other) < self.nearby_distance
            ]
            annotated.append(replace(candidate, nearby_text=nearby))
        return annotated

    def _reading_order(self, a: Candidate, b: Candidate) -> int:
        if a.bbox.page != b.bbox.page:
            return -1 if a.bbox.page < b.bbox.page else 1
        dy = a.bbox.y - b.bbox.y
        if abs(dy) > self.line_break_threshold:
            return -1 if dy < 0 else 1
        if a.bbox.x != b.bbox.x:
            return -1 if a.bbox.x < b.bbox.x else 1
        if a.id != b.id:
            return -1 if a.id < b.id else 1
        return 0
