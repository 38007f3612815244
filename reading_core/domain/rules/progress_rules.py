import math


class ProgressRules:
    """
    Scroll geometry -> progress fraction.
    Pure logic: No DB, No timers.
    """

    # Rounding slack when comparing a progress value against its ceiling
    EPSILON = 1e-9

    @staticmethod
    def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
        if value is None or math.isnan(value):
            return low
        return max(low, min(high, value))

    @staticmethod
    def compute_progress(offset: float, viewport_height: float, content_height: float) -> float:
        """
        progress = offset / (content - viewport), clamped to [0, 1].
        Content that fits in the viewport counts as fully read.
        """
        scrollable = content_height - viewport_height
        if scrollable <= 0:
            return 1.0
        return ProgressRules.clamp(offset / scrollable)

    @staticmethod
    def offset_for_progress(progress: float, viewport_height: float, content_height: float) -> float:
        """Pixel offset matching a progress fraction (used for scroll-back / restore)."""
        scrollable = max(0.0, content_height - viewport_height)
        return ProgressRules.clamp(progress) * scrollable

    @staticmethod
    def exceeds(progress: float, ceiling: float) -> bool:
        return progress > ceiling + ProgressRules.EPSILON

    @staticmethod
    def should_restore(saved_progress: float, viewport_height: float, content_height: float, threshold: float) -> bool:
        """Replay saved progress only past the threshold and once both measurements exist."""
        if not saved_progress or saved_progress <= threshold:
            return False
        return viewport_height > 0 and content_height > 0

    @staticmethod
    def is_completed(progress: float, threshold: float) -> bool:
        return progress >= threshold
