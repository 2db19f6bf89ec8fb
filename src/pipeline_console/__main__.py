import sys

from pipeline_console.cli import main

sys.exit(main())
