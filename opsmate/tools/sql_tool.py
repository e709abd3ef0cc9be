from enum import Enum

from opsmate.models.tool import ToolContext
from opsmate.services.error_patterns import ErrorPatternMatcher
from opsmate.services.risk_policy import RiskPolicy
from opsmate.tools.base import ToolAdapter


class SQLDialect(Enum):
    MYSQL = "MySQL"
    POSTGRESQL = "PostgreSQL"

    @property
    def tool_name(self) -> str:
        return "mysql" if self == SQLDialect.MYSQL else "postgresql"

    @property
    def cli_command(self) -> str:
        return "mysql" if self == SQLDialect.MYSQL else "psql"


class SQLTool(ToolAdapter):
    """Relational database statements for one SQL dialect."""

    keywords = {
        "select": 0.3,
        "insert": 0.3,
        "truncate": 0.3,
        "database": 0.3,
        "table": 0.3,
        "where": 0.3,
        "join": 0.3,
        "show": 0.1,
        "describe": 0.1,
        "update": 0.1,
        "delete": 0.1,
        "create": 0.1,
        "drop": 0.1,
        "alter": 0.1,
        "from": 0.1,
    }
    # A SQL file fed to the wrong client shows up as ERROR 1064
    error_families = ("drush", "sql")

    def __init__(
        self,
        policy: RiskPolicy,
        matcher: ErrorPatternMatcher,
        dialect: SQLDialect = SQLDialect.MYSQL,
    ):
        self.dialect = dialect
        self.invocation_tokens = (dialect.cli_command,)
        super().__init__(policy, matcher)

    @property
    def name(self) -> str:
        return self.dialect.tool_name

    def prompt_hints(self, context: ToolContext) -> str:
        return (
            f"- Dialect: {self.dialect.value}\n\n"
            "Common SQL operations:\n"
            "- SELECT: query data\n"
            "- INSERT: add new records\n"
            "- UPDATE: modify existing records\n"
            "- DELETE: remove records\n"
            "- CREATE: create database/table\n"
            "- DROP: remove database/table\n"
            "- SHOW: list databases/tables\n"
            "- DESCRIBE: show table structure"
        )
