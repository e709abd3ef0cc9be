"""
Known failure signatures for the supported tools.

Signatures are checked in order, most specific first, so that a tool-specific
misuse (drush fed a SQL file) wins over the generic error it also produces
(MySQL ERROR 1064). Solution commands may carry placeholders that are filled
from the matched text: {filename}, {verb}, {resource}, {image}, {port} and {host}.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Pattern

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ErrorExplanation, Solution
from opsmate.utils.logger import setup_logger

logger = setup_logger(__name__)

Extractor = Callable[[str], Dict[str, str]]


def _search(pattern: str, text: str, group: int = 1) -> Optional[str]:
    match = re.search(pattern, text, re.IGNORECASE)
    return match.group(group) if match else None


def extract_filename(text: str) -> Dict[str, str]:
    name = _search(r"(?:^|[\s'\"<=])([\w./-]+\.(?:mysql|sql))\b", text)
    return {"filename": name or "database.mysql"}


def extract_verb_resource(text: str) -> Dict[str, str]:
    match = re.search(r'cannot\s+(\w+)\s+resource\s+"([^"]+)"', text, re.IGNORECASE)
    if match:
        return {"verb": match.group(1), "resource": match.group(2)}
    return {"verb": "get", "resource": "pods"}


def extract_not_found_resource(text: str) -> Dict[str, str]:
    resource = _search(r'([\w.-]+)\s+"[^"]+"\s+not\s+found', text)
    return {"resource": (resource or "all").split(".")[0]}


def extract_image(text: str) -> Dict[str, str]:
    image = _search(r"(?:unable to find image|no such image:?)\s*'?([^'\s]+)'?", text)
    return {"image": image or "<image>"}


def extract_port(text: str) -> Dict[str, str]:
    port = _search(r":(\d{2,5})\b", text)
    return {"port": port or "<port>"}


def extract_host(text: str) -> Dict[str, str]:
    host = _search(r"(?:could not resolve host:?|lookup)\s+([\w.-]+)", text)
    return {"host": host or "<host>"}


@dataclass
class ErrorSignature:
    """One known failure: a pattern plus the explanation it yields."""

    tool: str
    error_type: str
    pattern: str
    reason: str
    possible_causes: List[str]
    solutions: List[Solution]
    recommended_solution: int = 0
    documentation_links: List[str] = field(default_factory=list)
    extract: Optional[Extractor] = None
    _regex: Pattern = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not 0 <= self.recommended_solution < len(self.solutions):
            raise ValueError(
                f"Signature '{self.error_type}' recommends solution "
                f"{self.recommended_solution} of {len(self.solutions)}"
            )
        try:
            self._regex = re.compile(self.pattern, re.IGNORECASE | re.DOTALL)
        except re.error as e:
            raise ValueError(f"Invalid pattern in '{self.error_type}': {e}") from e

    def matches(self, text: str) -> bool:
        return self._regex.search(text) is not None

    def explain(self, text: str) -> ErrorExplanation:
        values = self.extract(text) if self.extract else {}
        solutions = [
            Solution(
                description=s.description,
                command=_fill(s.command, values) if s.command else None,
                risk_level=s.risk_level,
            )
            for s in self.solutions
        ]
        return ErrorExplanation(
            error_type=self.error_type,
            reason=self.reason,
            possible_causes=list(self.possible_causes),
            solutions=solutions,
            recommended_solution=self.recommended_solution,
            documentation_links=list(self.documentation_links),
        )


def _fill(template: str, values: Dict[str, str]) -> str:
    for key, value in values.items():
        template = template.replace("{" + key + "}", value)
    return template


def default_signatures() -> List[ErrorSignature]:
    return [
        ErrorSignature(
            tool="drush",
            error_type="Drush SQL File Execution Error",
            pattern=r"error\s+1064.*?[\w./-]+\.(?:mysql|sql)\b",
            reason="drush sqlq expects a SQL statement and cannot read a file given as its argument",
            possible_causes=[
                "A .sql dump was passed to `drush sqlq` as if it were a query",
                "The file name was sent to MySQL as SQL text",
            ],
            solutions=[
                Solution(
                    "Pipe the file into sql:cli (recommended)",
                    "vendor/bin/drush sql:cli < {filename}",
                    RiskLevel.MEDIUM,
                ),
                Solution(
                    "Stream the file into sqlq with cat",
                    "cat {filename} | vendor/bin/drush sqlq",
                    RiskLevel.MEDIUM,
                ),
                Solution(
                    "Import directly with the mysql client",
                    "mysql -u user -p database < {filename}",
                    RiskLevel.MEDIUM,
                ),
            ],
            documentation_links=["https://www.drush.org/latest/commands/sql_cli/"],
            extract=extract_filename,
        ),
        ErrorSignature(
            tool="sql",
            error_type="SQL Syntax Error",
            pattern=r"error\s+1064",
            reason="MySQL could not parse the SQL statement",
            possible_causes=[
                "Misspelled keyword or missing clause",
                "A reserved word used as an identifier without backticks",
                "Unbalanced quotes or parentheses",
            ],
            solutions=[
                Solution("Check the statement syntax near the position MySQL reports"),
                Solution("Wrap reserved words used as identifiers in backticks: `table`"),
            ],
            documentation_links=[
                "https://dev.mysql.com/doc/mysql-errors/8.0/en/server-error-reference.html"
            ],
        ),
        ErrorSignature(
            tool="sql",
            error_type="MySQL Authentication Failed",
            pattern=r"error\s+1045|access denied for user",
            reason="The user name or password was rejected by the database server",
            possible_causes=[
                "Wrong password",
                "The user is not allowed to connect from this host",
            ],
            solutions=[
                Solution("Check the user name and password"),
                Solution(
                    "List the accounts and hosts allowed to connect",
                    "SELECT user, host FROM mysql.user;",
                    RiskLevel.LOW,
                ),
            ],
        ),
        ErrorSignature(
            tool="nginx",
            error_type="Nginx Port Conflict",
            pattern=r"bind\(\) to \S+ failed",
            reason="The port nginx is trying to listen on is already taken by another process",
            possible_causes=[
                "Another web server (Apache or a second nginx) is running",
                "A different application listens on the same port",
                "A previous nginx master did not shut down cleanly",
            ],
            solutions=[
                Solution(
                    "Check what is using the port",
                    "lsof -i :{port} -P -n",
                    RiskLevel.LOW,
                ),
                Solution(
                    "Stop the conflicting service (if Apache)",
                    "systemctl stop apache2",
                    RiskLevel.HIGH,
                ),
                Solution(
                    "Change the listen directive in the server block",
                    None,
                    RiskLevel.MEDIUM,
                ),
            ],
            documentation_links=["https://nginx.org/en/docs/"],
            extract=extract_port,
        ),
        ErrorSignature(
            tool="nginx",
            error_type="Nginx Configuration Syntax Error",
            pattern=r"\[emerg\].*(?:unexpected|unknown directive|invalid|not terminated)"
            r"|configuration file \S+ test failed",
            reason="The nginx configuration contains a syntax error",
            possible_causes=[
                "Missing semicolon at the end of a directive",
                "Unclosed brace or quote",
                "Misspelled directive or a module that is not loaded",
            ],
            solutions=[
                Solution("Test the configuration to see the exact error", "nginx -t", RiskLevel.LOW),
                Solution(
                    "Check the nginx error log",
                    "tail -50 /var/log/nginx/error.log",
                    RiskLevel.LOW,
                ),
            ],
            documentation_links=["https://nginx.org/en/docs/beginners_guide.html"],
        ),
        ErrorSignature(
            tool="nginx",
            error_type="Nginx Permission Denied",
            pattern=r"\(13: permission denied\)",
            reason="An nginx worker cannot read a file or directory it needs",
            possible_causes=[
                "The worker user lacks read permission",
                "SELinux or AppArmor blocks the access",
                "Wrong file ownership",
            ],
            solutions=[
                Solution("Find the nginx worker user", "ps aux | grep nginx", RiskLevel.LOW),
                Solution("Fix the owner and mode of the file", None, RiskLevel.MEDIUM),
            ],
        ),
        ErrorSignature(
            tool="apache2",
            error_type="Apache Port Conflict",
            pattern=r"ah00072|could not bind to address",
            reason="Apache is trying to listen on a port that is already in use",
            possible_causes=[
                "Another web server (nginx or a second Apache) is running",
                "A different application listens on the same port",
            ],
            solutions=[
                Solution(
                    "Check what is using the port",
                    "lsof -i :{port} -P -n",
                    RiskLevel.LOW,
                ),
                Solution(
                    "Stop Apache and look for leftover processes",
                    "systemctl stop apache2 && ps aux | grep apache2",
                    RiskLevel.HIGH,
                ),
            ],
            documentation_links=["https://httpd.apache.org/docs/"],
            extract=extract_port,
        ),
        ErrorSignature(
            tool="apache2",
            error_type="Apache Configuration Syntax Error",
            pattern=r"syntax error on line \d+|ah00526",
            reason="The Apache configuration contains a syntax error",
            possible_causes=[
                "Missing or misplaced directive",
                "Invalid VirtualHost block",
                "A directive from a module that is not enabled",
            ],
            solutions=[
                Solution("Test the configuration", "apache2ctl configtest", RiskLevel.LOW),
            ],
        ),
        ErrorSignature(
            tool="docker",
            error_type="Docker Socket Permission Denied",
            pattern=r"permission denied.*docker(?: daemon socket|\.sock)",
            reason="The current user may not access the Docker daemon socket",
            possible_causes=[
                "The user is not in the docker group",
                "Group membership changed but the session was not refreshed",
            ],
            solutions=[
                Solution(
                    "Add the current user to the docker group",
                    "sudo usermod -aG docker $USER",
                    RiskLevel.MEDIUM,
                ),
                Solution(
                    "Refresh group membership in the current shell",
                    "newgrp docker",
                    RiskLevel.LOW,
                ),
                Solution(
                    "Inspect the socket ownership",
                    "ls -l /var/run/docker.sock",
                    RiskLevel.LOW,
                ),
            ],
            documentation_links=[
                "https://docs.docker.com/engine/install/linux-postinstall/"
            ],
        ),
        ErrorSignature(
            tool="docker",
            error_type="Docker Daemon Not Running",
            pattern=r"cannot connect to the docker daemon|is the docker daemon running",
            reason="The Docker daemon is not running or cannot be reached",
            possible_causes=[
                "Docker Desktop or the docker service is stopped",
                "DOCKER_HOST points to an unreachable host",
            ],
            solutions=[
                Solution("Start Docker Desktop (macOS)", "open -a Docker", RiskLevel.LOW),
                Solution(
                    "Start the docker service (Linux)",
                    "sudo systemctl start docker",
                    RiskLevel.MEDIUM,
                ),
                Solution("Check the daemon status", "docker info", RiskLevel.LOW),
            ],
        ),
        ErrorSignature(
            tool="docker",
            error_type="Docker Image Not Found",
            pattern=r"unable to find image|no such image|manifest unknown",
            reason="The requested image does not exist locally or in the registry",
            possible_causes=[
                "Typo in the image name or tag",
                "The image was never pulled or was removed",
            ],
            solutions=[
                Solution("Pull the image", "docker pull {image}", RiskLevel.LOW),
                Solution("List local images", "docker images", RiskLevel.LOW),
            ],
            extract=extract_image,
        ),
        ErrorSignature(
            tool="docker",
            error_type="Docker Port Already Allocated",
            pattern=r"port is already allocated|address already in use",
            reason="Another process or container is already bound to the host port",
            possible_causes=[
                "A previous container with the same port mapping is still running",
                "A local service listens on that port",
            ],
            solutions=[
                Solution(
                    "Find the container publishing the port",
                    "docker ps --filter publish={port}",
                    RiskLevel.LOW,
                ),
                Solution(
                    "Find the local process bound to the port",
                    "lsof -i :{port}",
                    RiskLevel.LOW,
                ),
                Solution("Map the container to a different host port (-p)"),
            ],
            extract=extract_port,
        ),
        ErrorSignature(
            tool="kubectl",
            error_type="Kubernetes RBAC Permission Denied",
            pattern=r"\bforbidden\b|user\s.*\scannot\s",
            reason="Your account is not allowed to perform this operation",
            possible_causes=[
                "No Role or ClusterRole grants this verb on the resource",
                "The wrong kube context or user is active",
            ],
            solutions=[
                Solution(
                    "Check what you are allowed to do",
                    "kubectl auth can-i {verb} {resource}",
                    RiskLevel.LOW,
                ),
                Solution("Ask a cluster administrator for the missing permission"),
            ],
            documentation_links=[
                "https://kubernetes.io/docs/reference/access-authn-authz/rbac/"
            ],
            extract=extract_verb_resource,
        ),
        ErrorSignature(
            tool="kubectl",
            error_type="Kubectl Context Not Set",
            pattern=r"current-context is not set",
            reason="kubectl has no current context configured",
            possible_causes=["The kubeconfig is empty or its current-context was unset"],
            solutions=[
                Solution(
                    "List available contexts",
                    "kubectl config get-contexts",
                    RiskLevel.LOW,
                ),
                Solution(
                    "Select a context",
                    "kubectl config use-context <context-name>",
                    RiskLevel.LOW,
                ),
            ],
        ),
        ErrorSignature(
            tool="kubectl",
            error_type="Kubernetes API Server Unreachable",
            pattern=r"the connection to the server .* was refused|unable to connect to the server",
            reason="kubectl cannot reach the cluster API server",
            possible_causes=[
                "The cluster is down or still starting",
                "VPN or network access to the API endpoint is missing",
                "The kubeconfig points to the wrong server",
            ],
            solutions=[
                Solution("Check cluster endpoints", "kubectl cluster-info", RiskLevel.LOW),
                Solution(
                    "Show the server the current context uses",
                    "kubectl config view --minify",
                    RiskLevel.LOW,
                ),
            ],
        ),
        ErrorSignature(
            tool="kubectl",
            error_type="Kubernetes Resource Not Found",
            pattern=r"\(notfound\)",
            reason="The named resource does not exist in the target namespace",
            possible_causes=[
                "Typo in the resource name",
                "The resource lives in another namespace",
            ],
            solutions=[
                Solution(
                    "Search every namespace",
                    "kubectl get {resource} --all-namespaces",
                    RiskLevel.LOW,
                ),
                Solution(
                    "Show the namespace of the current context",
                    "kubectl config view --minify --output 'jsonpath={..namespace}'",
                    RiskLevel.LOW,
                ),
            ],
            extract=extract_not_found_resource,
        ),
        ErrorSignature(
            tool="network",
            error_type="Connection Refused",
            pattern=r"connection refused|econnrefused",
            reason="Nothing is listening on the target port",
            possible_causes=[
                "The service is not running",
                "The service listens on a different port or interface",
                "A firewall rejects the connection",
            ],
            solutions=[
                Solution("Check the listening ports", "ss -tlnp", RiskLevel.LOW),
                Solution(
                    "Check whether the service is running",
                    "systemctl status <service>",
                    RiskLevel.LOW,
                ),
            ],
        ),
        ErrorSignature(
            tool="network",
            error_type="Network Unreachable",
            pattern=r"network is unreachable|no route to host",
            reason="The target host cannot be reached from this machine",
            possible_causes=[
                "The network interface is down",
                "The routing table has no route to the target",
                "A firewall drops the traffic",
            ],
            solutions=[
                Solution("Check the network interfaces", "ip addr show", RiskLevel.LOW),
                Solution("Check the routing table", "ip route show", RiskLevel.LOW),
            ],
        ),
        ErrorSignature(
            tool="network",
            error_type="DNS Resolution Failed",
            pattern=r"could not resolve host|name or service not known"
            r"|temporary failure in name resolution",
            reason="The host name could not be resolved to an address",
            possible_causes=[
                "Typo in the host name",
                "The DNS server is unreachable or misconfigured",
            ],
            solutions=[
                Solution("Query DNS for the host", "nslookup {host}", RiskLevel.LOW),
                Solution("Check the resolver configuration", "cat /etc/resolv.conf", RiskLevel.LOW),
            ],
            extract=extract_host,
        ),
    ]


class ErrorPatternMatcher:
    """Ordered signature table shared by all adapters; read-only after construction."""

    def __init__(self, signatures: Optional[List[ErrorSignature]] = None):
        self.signatures: List[ErrorSignature] = (
            signatures if signatures is not None else default_signatures()
        )

    def match_pattern(
        self, text: str, tools: Optional[Iterable[str]] = None
    ) -> Optional[ErrorExplanation]:
        """
        Return the explanation of the first matching signature.

        Args:
            text: Raw error output.
            tools: Restrict matching to signatures owned by these tool families.

        Returns:
            The explanation, or None when nothing matches.
        """
        if not text:
            return None
        allowed = set(tools) if tools is not None else None
        for signature in self.signatures:
            if allowed is not None and signature.tool not in allowed:
                continue
            if signature.matches(text):
                logger.info(f"Matched error pattern: {signature.error_type}")
                return signature.explain(text)
        return None


def unknown_error_explanation(text: str) -> ErrorExplanation:
    """Generic explanation for output no signature recognises."""
    first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
    if len(first_line) > 200:
        first_line = first_line[:197] + "..."
    return ErrorExplanation(
        error_type="Unknown Error",
        reason=first_line or "The command failed without any output",
        possible_causes=[
            "Incorrect command syntax",
            "Environment or configuration problem",
        ],
        solutions=[
            Solution("Read the full error output and check the command arguments"),
            Solution("Search the error message in the tool's documentation"),
        ],
    )
