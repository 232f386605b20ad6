"""Allow `python -m hearing_dose`."""

import sys

from hearing_dose.main import main


sys.exit(main())
