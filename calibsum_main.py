"""
Day31: エントリーポイント（薄いラッパー） - calibsum

使い方:
    python calibsum_main.py input.txt
    python calibsum_main.py input.txt --part 2 --method scan
    cat input.txt | python calibsum_main.py - --json
"""

from __future__ import annotations

import sys


if __name__ == "__main__":
    from calibsum import main

    raise SystemExit(main(sys.argv[1:]))
