"""The pdmrg entry point, called by ``python -m pdmrg``."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import pdmrg

if __name__ == "__main__":
    import sys  # noqa 401
    pdmrg.console_main()
    sys.exit(0)
