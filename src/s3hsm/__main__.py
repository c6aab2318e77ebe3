"""Allow ``python -m s3hsm``."""

import sys

from s3hsm.cli import main

sys.exit(main())
