# -*- coding: utf-8 -*-
"""Define project metadata
"""

__title__ = "sdsprobe"
__summary__ = "Roundtrip and autocontainer verification for object storage."
__url__ = "https://github.com/weedonandscott/sdsprobe"

__version__ = "0.1.0"

__install_requires__ = ["anyio", "blake3"]
__tests_require__ = ["pytest", "tox"]

__author__ = "Weedon & Scott Studios"
__email__ = "Studios@WeedonAndScott.com"

__license__ = "MIT License"
