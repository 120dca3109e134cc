"""Default locations, relative to the project root the CLI runs from.

- infra/             # OpenTofu declarations and state
- site/dist/         # Output of the static-site build
- config/release.json
"""

from pathlib import Path

INFRA_DIR = Path("infra")
BUILD_DIR = Path("site") / "dist"
CONFIG_FILE = Path("config") / "release.json"

# 引擎要求的声明文件
REQUIRED_INFRA_FILES = ("main.tf", "variables.tf", "terraform.tfvars")
PLAN_FILE = "tfplan"
