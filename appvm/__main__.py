"""Module entry point for ``python -m appvm``."""

import sys

from appvm.cli import main

sys.exit(main())
