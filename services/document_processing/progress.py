"""Advisory progress reporting for readers, the chunker and the ingestion pipeline."""

import logging

from shared.models.document import ProgressCallback, ProgressEvent


def notify_progress(on_progress: ProgressCallback | None, event: ProgressEvent, logger: logging.Logger | None = None) -> None:
    """Deliver a progress event to an optional consumer.

    A consumer that raises is logged and ignored; progress never affects results.
    """
    if on_progress is None:
        return
    try:
        on_progress(event)
    except Exception as e:
        (logger or logging.getLogger(__name__)).warning(
            "Progress consumer failed at stage '%s': %s", event.stage, e
        )
