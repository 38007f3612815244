from typing import Protocol


class ReaderViewPort(Protocol):
    """
    Output Port: what the UI layer exposes to a reader view controller.
    """

    def scroll_to(self, offset: float, animated: bool = True) -> None:
        """Move the scroll view to a pixel offset."""
        ...

    def show_paywall(self, message: str) -> None:
        """Present an upgrade/sign-up prompt carrying a reason."""
        ...

    def on_progress(self, fraction: float) -> None:
        """Accepted progress fraction, for the progress bar."""
        ...


class ErrorReporterPort(Protocol):
    """Observability channel for failures that must not reach the UI."""

    def capture_exception(self, exc: BaseException, **context) -> None:
        ...
