"""
Per-route guard policy table.
First matching entry wins; unmatched requests get the public default.
"""
import re
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

MANAGER_ROLES = frozenset({"ADMIN", "BOSS"})
ALL_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


@dataclass(frozen=True)
class RoutePolicy:
    pattern: str
    methods: FrozenSet[str] = ALL_METHODS
    auth_required: bool = False
    roles: Optional[FrozenSet[str]] = None
    brute_force: bool = False
    auth_limited: bool = False
    upload: bool = False
    rate_limited: bool = True
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_regex", re.compile(self.pattern))

    def matches(self, method: str, path: str) -> bool:
        return method.upper() in self.methods and bool(self._regex.match(path))


DEFAULT_POLICY = RoutePolicy(pattern=r".*")

ROUTE_POLICIES: List[RoutePolicy] = [
    RoutePolicy(r"^/health$", frozenset({"GET", "HEAD"}), rate_limited=False),

    # Auth
    RoutePolicy(r"^/api/auth/(login|register)$", frozenset({"POST"}), brute_force=True, auth_limited=True),
    RoutePolicy(r"^/api/auth/me$", frozenset({"GET"}), auth_required=True),

    # Users
    RoutePolicy(r"^/api/users$", frozenset({"GET"}), auth_required=True, roles=MANAGER_ROLES),
    RoutePolicy(r"^/api/users/status$", frozenset({"GET"}), auth_required=True),
    RoutePolicy(r"^/api/users/[^/]+$", frozenset({"PUT"}), auth_required=True),

    # Tasks
    RoutePolicy(r"^/api/tasks$", frozenset({"GET"}), auth_required=True),
    RoutePolicy(r"^/api/tasks$", frozenset({"POST"}), auth_required=True, auth_limited=True),
    RoutePolicy(r"^/api/tasks/[^/]+$", frozenset({"PUT"}), auth_required=True),
    RoutePolicy(r"^/api/tasks/[^/]+$", frozenset({"DELETE"}), auth_required=True, roles=MANAGER_ROLES),
    RoutePolicy(r"^/api/tasks/[^/]+/archive$", frozenset({"PUT"}), auth_required=True, roles=MANAGER_ROLES),
    RoutePolicy(r"^/api/tasks/[^/]+/upload$", frozenset({"POST"}), auth_required=True, upload=True),
    RoutePolicy(r"^/api/tasks/[^/]+/download$", frozenset({"GET"}), auth_required=True),

    # Files
    RoutePolicy(r"^/api/upload$", frozenset({"POST"}), auth_required=True, upload=True),
    RoutePolicy(r"^/uploads/.+$", frozenset({"GET", "HEAD"})),
]


class RoutePolicyTable:
    def __init__(self, policies: Optional[List[RoutePolicy]] = None, default: RoutePolicy = DEFAULT_POLICY):
        self.policies = list(ROUTE_POLICIES if policies is None else policies)
        self.default = default

    def match(self, method: str, path: str) -> RoutePolicy:
        for policy in self.policies:
            if policy.matches(method, path):
                return policy
        return self.default
