"""Allow running as: python -m ideaforge <file.org> [--new]"""

import sys

from ideaforge.errors import InputError
from ideaforge.main import run


def main() -> int:
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if not args:
        print("usage: python -m ideaforge <file.org> [--new]", file=sys.stderr)
        return 2
    try:
        result = run(args[0], force_new="--new" in sys.argv)
    except InputError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 1 if result.halted else 0


if __name__ == "__main__":
    sys.exit(main())
