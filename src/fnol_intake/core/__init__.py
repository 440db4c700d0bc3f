# FNOL Intake - Motor Claim Submission Core
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.


"""Core infrastructure components for the FNOL intake core."""

from .config import Settings, get_settings
from .database import Database, create_database
from .result_types import Err, Ok, Result

__all__ = ["Settings", "get_settings", "Database", "create_database", "Ok", "Err", "Result"]
