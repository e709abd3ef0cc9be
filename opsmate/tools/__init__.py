from opsmate.tools.apache2_tool import Apache2Tool
from opsmate.tools.base import ToolAdapter
from opsmate.tools.docker_tool import DockerTool
from opsmate.tools.drush_tool import DrushTool
from opsmate.tools.kubectl_tool import KubectlTool
from opsmate.tools.network_tool import NetworkTool
from opsmate.tools.nginx_tool import NginxTool
from opsmate.tools.sql_tool import SQLDialect, SQLTool

__all__ = [
    "ToolAdapter",
    "KubectlTool",
    "DockerTool",
    "SQLTool",
    "SQLDialect",
    "DrushTool",
    "NginxTool",
    "Apache2Tool",
    "NetworkTool",
]
