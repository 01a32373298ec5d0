"""
Settings and configuration for the workspace sandbox.

Example:
    ```python
    from workspace_sandbox.settings import SandboxSettings

    # Load from file; keys set in the file win over WORKSPACE_SANDBOX_*
    # variables, keys it leaves out still come from the environment
    settings = SandboxSettings.from_file("~/.config/workspace-sandbox/config.yaml")

    # Or rely on defaults + WORKSPACE_SANDBOX_* environment variables
    settings = SandboxSettings()
    print(settings.tools.default_shell_timeout)
    ```
"""

from workspace_sandbox.settings.config import (
    ContainerRuntimeConfig,
    SandboxSettings,
    ToolsConfig,
)

__all__ = [
    "ContainerRuntimeConfig",
    "SandboxSettings",
    "ToolsConfig",
]
