"""Create, inspect or advance the inspection request counter.

Usage:
    python scripts/init_request_counter.py              # create at 0 if missing
    python scripts/init_request_counter.py init 100     # create at 100 if missing
    python scripts/init_request_counter.py show
    python scripts/init_request_counter.py reset 500    # move forward to 500

reset only moves the counter forward. Issued request ids stay reserved, so a
counter moved below them would make every new request for an existing
model/make collide and fail with a conflict once the retries run out.
"""
import os, sys
# ensure the shared layer is importable without using the reserved word 'lambda' as a top-level package
base = os.path.normpath(os.path.join(os.path.dirname(__file__), '..', 'python'))
if base not in sys.path:
    sys.path.insert(0, base)

from common import config
from common.counters import get_current_sequence, initialize_counter, reset_counter
from common.errors import InvalidState


def main(argv):
    command = argv[0] if argv else 'init'
    value = int(argv[1]) if len(argv) > 1 else 0
    name = config.REQUEST_COUNTER_NAME

    if command == 'init':
        current = initialize_counter(name, value, debug=print)
        print(f'{name} counter at {current}')
    elif command == 'show':
        print(f'{name} counter at {get_current_sequence(name)}')
    elif command == 'reset':
        try:
            reset_counter(name, value)
        except InvalidState as e:
            print(f'refused: {e.message}')
            return 1
        print(f'{name} counter moved to {value}')
    else:
        print(__doc__)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
