import sys

from stickerwall.cli import main

sys.exit(main())
