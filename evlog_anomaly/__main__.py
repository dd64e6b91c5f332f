"""Run with: python -m evlog_anomaly scan <root>"""

import sys

from .main import main

sys.exit(main())
