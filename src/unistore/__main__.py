"""Allow running as: python -m unistore."""

import sys

from unistore.cli import main

sys.exit(main())
