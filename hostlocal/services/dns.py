from ..errors import IOFailureError
from ..schemas.result import DNS


def parse_resolv_conf(path: str) -> DNS:
    """Read nameservers, domain, search list and options from a resolv.conf file."""
    dns = DNS()
    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except (OSError, UnicodeDecodeError) as e:
        raise IOFailureError(f"failed to read resolv.conf {path}: {e}")

    for line in lines:
        line = line.strip()
        if not line or line[0] in "#;":
            continue

        fields = line.split()
        if len(fields) < 2:
            continue

        keyword = fields[0]
        if keyword == "nameserver":
            dns.nameservers.append(fields[1])
        elif keyword == "domain":
            dns.domain = fields[1]
        elif keyword == "search":
            dns.search.extend(fields[1:])
        elif keyword == "options":
            dns.options.extend(fields[1:])

    return dns
