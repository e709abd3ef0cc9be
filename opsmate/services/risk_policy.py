"""
Risk policy engine.

Each tool family owns an ordered table of rules. A rule is a compiled pattern
over the lowercased command text paired with a RiskLevel; classification keeps
the most severe level among all matching rules and defaults to LOW.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ToolContext

_SUBSTITUTION = r"(?:\$\(|`|\bxargs\b)"
_QUOTED_LITERAL = re.compile(r"'[^']*'")
_PACKAGE_REMOVE = r"\b(?:apt|apt-get|yum|dnf)\b.*\b(?:remove|purge|autoremove|erase)\b"


def _words(*words: str) -> str:
    """Whole-word alternation, e.g. _words("get", "describe")."""
    return r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b"


def _tokens(*tokens: str) -> str:
    """Whitespace-delimited alternation, so "rm" does not match "--rm"."""
    alternation = "|".join(re.escape(t) for t in tokens)
    return r"(?:^|[\s;&|])(?:" + alternation + r")(?=$|[\s;&|])"


@dataclass(frozen=True)
class RiskRule:
    """
    A named predicate over the lowercased command text.

    An ``unless`` exception is scoped to the statement the pattern matched:
    the text is split on ";" and only what follows the match in that same
    statement is searched, with single-quoted literals blanked out. A WHERE
    in a later statement or inside a string value does not count.

    A rule with ``after`` only looks at the text following the first match of
    that pattern, e.g. the command a ``kubectl exec`` passes to a container.
    """

    name: str
    pattern: str
    level: RiskLevel
    unless: Optional[str] = None
    after: Optional[str] = None
    _regex: Pattern = field(init=False, repr=False, compare=False)
    _unless_regex: Optional[Pattern] = field(init=False, repr=False, compare=False)
    _after_regex: Optional[Pattern] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "_regex", re.compile(self.pattern))
            object.__setattr__(
                self,
                "_unless_regex",
                re.compile(self.unless) if self.unless else None,
            )
            object.__setattr__(
                self,
                "_after_regex",
                re.compile(self.after) if self.after else None,
            )
        except re.error as e:
            raise ValueError(f"Invalid pattern in risk rule '{self.name}': {e}") from e

    def matches(self, command: str) -> bool:
        """Test an already lowercased command."""
        if self._after_regex is not None:
            scope = self._after_regex.search(command)
            if scope is None:
                return False
            command = command[scope.end():]
        if self._unless_regex is None:
            return self._regex.search(command) is not None
        for statement in command.split(";"):
            match = self._regex.search(statement)
            if match is None:
                continue
            rest = _QUOTED_LITERAL.sub("''", statement[match.start():])
            if not self._unless_regex.search(rest):
                return True
        return False


class RiskPolicy:
    """An ordered rule table for one tool family."""

    def __init__(self, name: str, rules: Sequence[RiskRule]):
        if not rules:
            raise ValueError(f"Risk policy '{name}' has no rules")
        seen = set()
        for rule in rules:
            if rule.name in seen:
                raise ValueError(f"Duplicate rule '{rule.name}' in policy '{name}'")
            seen.add(rule.name)
        self.name = name
        self.rules: List[RiskRule] = list(rules)

    def matching_rules(self, command: str) -> List[RiskRule]:
        lowered = command.lower()
        return [rule for rule in self.rules if rule.matches(lowered)]

    def classify(
        self, command: str, context: Optional[ToolContext] = None
    ) -> RiskLevel:
        """
        Classify a command. Pure and deterministic.

        The context does not lower a level; production handling lives in the
        confirmation predicates on RiskLevel.
        """
        level = RiskLevel.LOW
        for rule in self.matching_rules(command):
            if rule.level > level:
                level = rule.level
        return level

    def __repr__(self) -> str:
        return f"RiskPolicy(name={self.name!r}, rules={len(self.rules)})"


def kubectl_rules() -> List[RiskRule]:
    return [
        # Batch destructive
        RiskRule(
            "delete-all",
            _words("delete") + r".*(?:--all\b|--all-namespaces\b|\s-a\b)",
            RiskLevel.CRITICAL,
        ),
        RiskRule(
            "delete-namespace",
            _words("delete") + r"\s+(?:namespaces?|ns)\b",
            RiskLevel.CRITICAL,
        ),
        # Destructive on a single target
        RiskRule("delete", _words("delete"), RiskLevel.HIGH),
        RiskRule("drain", _words("drain"), RiskLevel.HIGH),
        RiskRule(
            "scale-to-zero",
            _words("scale") + r".*--replicas[=\s]+0\b",
            RiskLevel.HIGH,
        ),
        # State-modifying
        RiskRule(
            "modify",
            _words(
                "apply",
                "create",
                "patch",
                "edit",
                "replace",
                "scale",
                "rollout",
                "restart",
                "label",
                "annotate",
                "cordon",
                "uncordon",
                "taint",
                "set",
            ),
            RiskLevel.MEDIUM,
        ),
        # Read-only
        RiskRule(
            "read",
            _words("get", "describe", "logs", "top", "explain", "api-resources", "auth"),
            RiskLevel.LOW,
        ),
    ]


def docker_rules() -> List[RiskRule]:
    remove = _tokens("rm", "rmi")
    return [
        RiskRule(
            "remove-substituted",
            r"^(?=.*" + remove + r")(?=.*" + _SUBSTITUTION + r")",
            RiskLevel.CRITICAL,
        ),
        RiskRule(
            "prune-all",
            _words("prune") + r".*(?:--all\b|\s-[a-z]*a[a-z]*\b)",
            RiskLevel.CRITICAL,
        ),
        RiskRule("remove", remove, RiskLevel.HIGH),
        RiskRule("prune", _words("prune"), RiskLevel.HIGH),
        RiskRule(
            "compose-down-volumes",
            r"\bcompose\s+down\b.*(?:\s-v\b|--volumes\b)",
            RiskLevel.HIGH,
        ),
        RiskRule(
            "stop-substituted",
            _words("stop", "kill") + r".*" + _SUBSTITUTION,
            RiskLevel.HIGH,
        ),
        RiskRule(
            "modify",
            _words(
                "run",
                "create",
                "start",
                "restart",
                "stop",
                "kill",
                "build",
                "push",
                "pull",
                "exec",
            ),
            RiskLevel.MEDIUM,
        ),
        RiskRule(
            "compose-lifecycle",
            r"\bcompose\s+(?:up|down|restart)\b",
            RiskLevel.MEDIUM,
        ),
        RiskRule(
            "read",
            _words("ps", "images", "inspect", "logs", "stats", "info", "version"),
            RiskLevel.LOW,
        ),
    ]


def sql_rules() -> List[RiskRule]:
    return [
        RiskRule("drop", r"\bdrop\s+\w+", RiskLevel.CRITICAL),
        RiskRule("truncate", _words("truncate"), RiskLevel.CRITICAL),
        RiskRule(
            "delete-without-where",
            r"\bdelete\s+from\b",
            RiskLevel.CRITICAL,
            unless=r"\bwhere\b",
        ),
        RiskRule(
            "update-without-where",
            r"\bupdate\b.+\bset\b",
            RiskLevel.CRITICAL,
            unless=r"\bwhere\b",
        ),
        RiskRule("insert", _words("insert"), RiskLevel.MEDIUM),
        RiskRule("update", r"\bupdate\b.+\bset\b", RiskLevel.MEDIUM),
        RiskRule("delete", r"\bdelete\s+from\b", RiskLevel.MEDIUM),
        RiskRule(
            "schema-change",
            _words("alter", "create", "replace", "grant", "revoke"),
            RiskLevel.MEDIUM,
        ),
        RiskRule(
            "read",
            _words("select", "show", "describe", "desc", "explain"),
            RiskLevel.LOW,
        ),
    ]


def drush_rules() -> List[RiskRule]:
    return [
        RiskRule("sql-drop", _tokens("sql:drop", "sql-drop"), RiskLevel.CRITICAL),
        RiskRule("sql-create", _tokens("sql:create", "sql-create"), RiskLevel.CRITICAL),
        RiskRule(
            "site-install",
            _tokens("site:install", "site-install", "si"),
            RiskLevel.CRITICAL,
        ),
        RiskRule(
            "uninstall",
            _tokens("pm:uninstall", "pm-uninstall", "pmu"),
            RiskLevel.HIGH,
        ),
        RiskRule("sql-sync", _tokens("sql:sync", "sql-sync"), RiskLevel.HIGH),
        RiskRule(
            "config-import",
            _tokens("config:import", "config-import", "cim"),
            RiskLevel.MEDIUM,
        ),
        RiskRule("sql-cli", _tokens("sql:cli", "sql-cli", "sqlc"), RiskLevel.MEDIUM),
        RiskRule(
            "sql-query",
            _tokens("sql:query", "sql-query", "sqlq"),
            RiskLevel.MEDIUM,
        ),
        RiskRule(
            "cache-rebuild",
            _tokens("cache:rebuild", "cache-rebuild", "cr"),
            RiskLevel.MEDIUM,
        ),
        RiskRule("updatedb", _tokens("updatedb", "updb"), RiskLevel.MEDIUM),
        RiskRule("enable", _tokens("pm:enable", "pm-enable", "en"), RiskLevel.MEDIUM),
        RiskRule("deploy", _tokens("deploy"), RiskLevel.MEDIUM),
        RiskRule(
            "read",
            _tokens(
                "status",
                "st",
                "uli",
                "user:login",
                "cex",
                "config:export",
                "sql:connect",
                "watchdog:show",
                "ws",
            ),
            RiskLevel.LOW,
        ),
    ]


def _web_server_rules(config_dir: str) -> List[RiskRule]:
    """Service lifecycle and config edits shared by nginx and apache2."""
    return [
        RiskRule("uninstall", _PACKAGE_REMOVE, RiskLevel.CRITICAL),
        RiskRule("remove-config", r"\brm\b.*" + config_dir, RiskLevel.HIGH),
        RiskRule("stop", _tokens("stop", "quit", "graceful-stop"), RiskLevel.HIGH),
        RiskRule("kill", _words("kill", "pkill", "killall"), RiskLevel.HIGH),
        RiskRule(
            "edit-config",
            r"(?:\btee\b|\bsed\s+-i\b|\bcp\b|\bmv\b|\bln\s+-s\b).*" + config_dir,
            RiskLevel.MEDIUM,
        ),
        RiskRule(
            "lifecycle",
            _tokens("start", "restart", "reload", "reopen", "graceful"),
            RiskLevel.MEDIUM,
        ),
    ]


def nginx_rules() -> List[RiskRule]:
    return _web_server_rules(r"/etc/nginx") + [
        RiskRule(
            "read",
            r"\s-[tv]\b|" + _words("status", "cat", "tail", "less", "journalctl"),
            RiskLevel.LOW,
        ),
    ]


def apache2_rules() -> List[RiskRule]:
    return _web_server_rules(r"/etc/(?:apache2|httpd)") + [
        RiskRule(
            "toggle-site",
            _words("a2ensite", "a2dissite", "a2enmod", "a2dismod", "a2enconf", "a2disconf"),
            RiskLevel.MEDIUM,
        ),
        RiskRule(
            "read",
            r"\s-[tsmv]\b|"
            + _words("configtest", "status", "cat", "tail", "less", "journalctl"),
            RiskLevel.LOW,
        ),
    ]


def network_rules() -> List[RiskRule]:
    return [
        # Dropping every firewall rule at once
        RiskRule(
            "firewall-flush",
            r"\biptables\b.*(?:\s-f\b|--flush\b)|\bnft\s+flush\b",
            RiskLevel.CRITICAL,
        ),
        RiskRule(
            "firewall-disable",
            r"\bufw\s+(?:--force\s+)?(?:disable|reset)\b",
            RiskLevel.CRITICAL,
        ),
        RiskRule(
            "firewall-rule",
            r"\biptables\b.*(?:\s-[adirp]\b|--(?:append|delete|insert|replace|policy)\b)"
            r"|\bufw\s+(?:allow|deny|reject|limit|delete|insert)\b"
            r"|\bfirewall-cmd\b.*--(?:add|remove)-",
            RiskLevel.HIGH,
        ),
        RiskRule(
            "interface",
            r"\bip\s+(?:link\s+set|(?:addr|address|route)\s+(?:add|del|delete|change|replace|flush))\b"
            r"|\bifconfig\s+\S+\s+\S"
            r"|" + _words("ifdown", "ifup"),
            RiskLevel.HIGH,
        ),
        RiskRule(
            "kill-listener",
            _words("kill", "pkill", "killall") + r"|\bfuser\b.*\s-k\b",
            RiskLevel.HIGH,
        ),
        RiskRule(
            "write-request",
            r"\b(?:curl|wget)\b.*(?:\s-x\s*(?:post|put|patch|delete)\b"
            r"|--request[=\s]+(?:post|put|patch|delete)\b|\s(?:-d|--data\S*)\s)",
            RiskLevel.MEDIUM,
        ),
        RiskRule(
            "read",
            _words(
                "netstat",
                "ss",
                "lsof",
                "ping",
                "dig",
                "nslookup",
                "traceroute",
                "telnet",
                "nc",
                "curl",
                "wget",
            )
            + r"|\bip\s+(?:addr|address|route|link)\b",
            RiskLevel.LOW,
        ),
    ]


def build_default_policies() -> Dict[str, RiskPolicy]:
    """
    One policy per tool family.

    Drush includes the SQL table so sqlq is covered. kubectl and docker apply
    it to whatever an ``exec`` runs inside the container.
    """
    exec_sql = [_prefixed("exec-sql.", r, after=_words("exec")) for r in sql_rules()]
    return {
        "kubectl": RiskPolicy("kubectl", kubectl_rules() + exec_sql),
        "docker": RiskPolicy("docker", docker_rules() + exec_sql),
        "sql": RiskPolicy("sql", sql_rules()),
        "drush": RiskPolicy(
            "drush",
            drush_rules() + [_prefixed("sql.", r) for r in sql_rules()],
        ),
        "nginx": RiskPolicy("nginx", nginx_rules()),
        "apache2": RiskPolicy("apache2", apache2_rules()),
        "network": RiskPolicy("network", network_rules()),
    }


def _prefixed(prefix: str, rule: RiskRule, after: Optional[str] = None) -> RiskRule:
    return RiskRule(prefix + rule.name, rule.pattern, rule.level, rule.unless, after)
