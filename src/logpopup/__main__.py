"""logpopup 入口点。

支持: python -m logpopup
"""

import multiprocessing

from .app import main

if __name__ == "__main__":
    multiprocessing.freeze_support()
    main()
