import sys

from txstream.main import run

sys.exit(run())
