#!/usr/bin/env python
"""
Deform a moving surface mesh toward a fixed surface mesh.
"""

import sys

from thinshelldemons.cli.register_thin_shell_demons import main

if __name__ == '__main__':
    sys.exit(main())
