"""
Printing subsystem for Receipt Dispatch.

This package groups the print job execution pipeline:

- transport: USB / serial byte channels (open, write, drain, close)
- commands: ESC/POS byte encoders (text, raster image, barcode, native QR)
- buffer: output buffer batching encoded bytes between physical writes
- images: Pillow-based image loading, resizing, and raster packing
- receipt: receipt content model and fixed layouts
- executor: per-job state machine
- scheduler: FIFO single-concurrency dispatcher

For convenience, common names are re-exported for easy import.
"""

from .buffer import *
from .commands import *
from .executor import *
from .images import *
from .models import *
from .receipt import *
from .scheduler import *
from .transport import *
