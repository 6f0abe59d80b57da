# -*- coding: utf-8 -*-
"""Location: ./teamgate/__init__.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Teamgate - team join requests routed through mail and issue tracker approvals.
"""

__author__ = "Teamgate Contributors"
__version__ = "0.4.0"
__license__ = "Apache-2.0"
__copyright__ = "Copyright 2025"
__description__ = "Team join approval service"
__keywords__ = ["teams", "approvals", "github", "membership"]
__all__ = ["__version__"]
