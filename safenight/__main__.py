import sys

from safenight.main import main

sys.exit(main() or 0)
