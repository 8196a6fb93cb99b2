"""
Organization lookup

Derives a human-readable organization label from a module path.  Hosts
listed in OWNER_HOSTS use the path's owner segment; everything else goes
through the prefix table, longest prefix first.
"""

OWNER_HOSTS = frozenset({"github.com", "gitlab.com", "bitbucket.org"})

ORG_PREFIXES: dict[str, str] = {
    "google.golang.org/": "google",
    "cloud.google.com/": "google",
    "golang.org/": "golang",
    "k8s.io/": "kubernetes",
    "sigs.k8s.io/": "kubernetes",
    "go.uber.org/": "uber-go",
    "gorm.io/": "go-gorm",
    "go.opentelemetry.io/": "open-telemetry",
    "go.mongodb.org/": "mongodb",
    "go.etcd.io/": "etcd-io",
}

_SORTED_PREFIXES = sorted(ORG_PREFIXES.items(), key=lambda item: len(item[0]), reverse=True)


def module_host(path: str) -> str:
    """First element of a module path, e.g. ``github.com``."""
    return path.split("/", 1)[0]


def extract_org(path: str) -> str:
    """Return the organization owning ``path``, or an empty string."""
    parts = path.split("/")
    if parts[0] in OWNER_HOSTS:
        return parts[1] if len(parts) > 1 else ""

    for prefix, org in _SORTED_PREFIXES:
        if path.startswith(prefix):
            return org
    return ""
