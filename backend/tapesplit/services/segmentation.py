import logging
from typing import List, Sequence

from ..models.tracks import Segment, SilenceInterval

logger = logging.getLogger(__name__)


def silences_to_segments(
    silences: Sequence[SilenceInterval],
    total_duration: float,
    min_segment: float,
) -> List[Segment]:
    """
    Turn detected silences into the audible spans between them.

    Silences are consumed in arrival order. The span before each silence is kept
    only when it is at least min_segment long, and the cursor always advances to
    the silence end, so a dropped span never merges into the next one. The span
    after the last silence is tested the same way against total_duration.
    """
    segments: List[Segment] = []
    last_end = 0.0

    for silence in silences:
        if silence.start > last_end:
            duration = silence.start - last_end
            if duration >= min_segment:
                segments.append(Segment(start=last_end, end=silence.start, duration=duration))
        last_end = max(last_end, silence.end)

    if total_duration > last_end:
        duration = total_duration - last_end
        if duration >= min_segment:
            segments.append(Segment(start=last_end, end=total_duration, duration=duration))

    logger.info(f"[split] Extracted {len(segments)} segments (min {min_segment}s)")
    return segments
