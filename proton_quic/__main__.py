import sys

from proton_quic.cli import main

sys.exit(main())
