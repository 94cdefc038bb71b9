"""Protocol layer: frame building, command builders, and response parsing."""

from .framing import FrameBuffer, build_frame
from .commands import Addressing, CommandEncoder, InvalidArgument, Operation, build
from .parser import Category, ChangeEvent, ResponseParser, StatusKind
