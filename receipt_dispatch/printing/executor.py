"""
Job executor: runs one PrintJob against its printer.

Each job moves through Opening -> Rendering -> Completing -> Succeeded/Failed.
The executor never raises; every outcome is reported as a JobResult.

Rendering writes every segment's bytes into an OutputBuffer. The buffer is
flushed and drained after images and QR codes (the largest payloads, which
must not be pipelined into what follows) and once more before closing.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from receipt_dispatch.core.errors import (
    CloseError,
    EncodingError,
    ImageLoadError,
    TransportOpenError,
)
from receipt_dispatch.core.logging import job_context
from receipt_dispatch.printing import commands
from receipt_dispatch.printing.buffer import OutputBuffer
from receipt_dispatch.printing.commands import Raster
from receipt_dispatch.printing.images import load_raster
from receipt_dispatch.printing.models import JobResult, JobState, PrintJob, PrintMode
from receipt_dispatch.printing.receipt import (
    BarcodeSegment,
    CutSegment,
    FeedSegment,
    ImageSegment,
    QRSegment,
    Segment,
    TextSegment,
    full_receipt,
    simple_test,
)
from receipt_dispatch.printing.transport import PrintTarget, Transport, open_transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[PrintTarget], Transport]
ImageLoader = Callable[[str, int], Raster]

_TRANSITIONS = {
    JobState.QUEUED: {JobState.OPENING},
    JobState.OPENING: {JobState.RENDERING, JobState.FAILED},
    JobState.RENDERING: {JobState.COMPLETING},
    JobState.COMPLETING: {JobState.SUCCEEDED, JobState.FAILED},
}


class _JobRun:
    """Tracks the state of one execution and rejects illegal transitions."""

    def __init__(self, job: PrintJob) -> None:
        self.job = job
        self.state = JobState.QUEUED

    def to(self, state: JobState) -> None:
        if state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"illegal job transition {self.state.value} -> {state.value}")
        logger.debug("Job %s: %s -> %s", self.job.id, self.state.value, state.value)
        self.state = state


class JobExecutor:
    """
    Executes print jobs. Stateless between jobs; the scheduler guarantees
    execute() is never called for two jobs at once.
    """

    def __init__(
        self,
        transport_factory: TransportFactory = open_transport,
        image_loader: ImageLoader = load_raster,
        text_encoding: str = "cp437",
    ) -> None:
        self._transport_factory = transport_factory
        self._image_loader = image_loader
        self._encoding = text_encoding

    def segments_for(self, job: PrintJob) -> Iterable[Segment]:
        if job.mode is PrintMode.SIMPLE:
            return simple_test()
        return full_receipt(job.content)

    def execute(self, job: PrintJob) -> JobResult:
        run = _JobRun(job)
        with job_context(job.id):
            run.to(JobState.OPENING)
            logger.info("Opening printer for job %s", job.describe())
            try:
                transport = self._transport_factory(job.target)
                transport.open()
            except TransportOpenError as e:
                run.to(JobState.FAILED)
                logger.error("Device open error (%s): %s", e.reason, e)
                return JobResult.failed(f"Could not open printer. {e}", opened=False)
            except Exception as e:
                run.to(JobState.FAILED)
                logger.exception("Exception in print job setup: %s", e)
                return JobResult.failed(f"Could not open printer. {e}", opened=False)

            run.to(JobState.RENDERING)
            logger.info("Printer connected (%s), starting print job", transport.describe())
            error: Optional[Exception] = None
            try:
                self.render(self.segments_for(job), transport)
            except Exception as e:
                logger.exception("Printing error sequence: %s", e)
                error = e

            run.to(JobState.COMPLETING)
            self._close_quietly(transport)

            if error is not None:
                run.to(JobState.FAILED)
                return JobResult.failed(str(error) or type(error).__name__)
            run.to(JobState.SUCCEEDED)
            if job.mode is PrintMode.SIMPLE:
                return JobResult.ok("Test print sent!")
            return JobResult.ok("Print sent successfully!")

    def render(self, segments: Iterable[Segment], transport: Transport) -> None:
        """
        Encode segments in order through one OutputBuffer, writing to transport.

        Raises on transport failures and on encoding failures of segments
        that have no fallback text.
        """
        buffer = OutputBuffer()
        buffer.write(commands.initialize())
        for segment in segments:
            self._render_segment(segment, buffer, transport)
        buffer.flush_to(transport, drain=True)

    def _render_segment(self, segment: Segment, buffer: OutputBuffer, transport: Transport) -> None:
        if isinstance(segment, TextSegment):
            buffer.write(commands.align(segment.align) + commands.text(segment.text, self._encoding))
        elif isinstance(segment, FeedSegment):
            buffer.write(commands.feed(segment.lines))
        elif isinstance(segment, CutSegment):
            buffer.write(commands.feed(segment.feed) + commands.cut(segment.partial))
        elif isinstance(segment, ImageSegment):
            try:
                if not segment.source:
                    raise ImageLoadError("no image source")
                raster = self._image_loader(segment.source, segment.width)
                data = commands.align(segment.align) + commands.raster_image(raster)
            except Exception as e:
                # Any image failure degrades to the fallback text
                self._fallback(segment, e, buffer)
                return
            buffer.write(data)
            buffer.flush_to(transport, drain=True)
        elif isinstance(segment, BarcodeSegment):
            try:
                data = commands.align(segment.align) + commands.barcode(
                    segment.payload, segment.symbology, width=segment.width, height=segment.height,
                )
            except EncodingError as e:
                self._fallback(segment, e, buffer)
                return
            buffer.write(data)
        elif isinstance(segment, QRSegment):
            try:
                data = commands.align(segment.align) + commands.qr_native(
                    segment.payload, module_size=segment.module_size, error_correction=segment.error_correction,
                )
            except EncodingError as e:
                self._fallback(segment, e, buffer)
                return
            buffer.write(data)
            buffer.flush_to(transport, drain=True)
        else:
            raise EncodingError(f"unknown segment type: {type(segment).__name__}")

    def _fallback(self, segment, exc: Exception, buffer: OutputBuffer) -> None:
        fallback = getattr(segment, "fallback_text", None)
        if fallback is None:
            raise exc
        logger.warning("Skipping %s: %s", type(segment).__name__, exc)
        buffer.write(commands.align(segment.align) + commands.text(fallback, self._encoding))

    def _close_quietly(self, transport: Transport) -> None:
        try:
            transport.close()
        except CloseError as e:
            logger.warning("Ignoring close failure: %s", e)
        except Exception:
            logger.exception("Unexpected error closing %s", transport.describe())


__all__ = ["JobExecutor"]
