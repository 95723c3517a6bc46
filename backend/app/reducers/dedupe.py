from typing import Any, Iterable, List, Set, Tuple
from app.schemas import ServiceRecord


def normalize(value: Any) -> str:
    """Lower-case and trim; None becomes ''."""
    return str(value if value is not None else "").lower().strip()


def identity_key(record: ServiceRecord) -> Tuple[str, str]:
    return normalize(record.category_key), normalize(record.name)


def dedupe_services(records: Iterable[ServiceRecord]) -> List[ServiceRecord]:
    """
    Keep the first record per (category, name), in input order.
    The same service offered by several providers is shown once.
    Records without a usable name are dropped and never shadow a later one.
    """
    seen: Set[Tuple[str, str]] = set()
    out: List[ServiceRecord] = []
    for rec in records:
        category, name = identity_key(rec)
        if not name:
            continue
        if (category, name) in seen:
            continue
        seen.add((category, name))
        out.append(rec)
    return out


def filter_by_category(records: Iterable[ServiceRecord], category: str) -> List[ServiceRecord]:
    wanted = normalize(category)
    return [r for r in records if normalize(r.category_key) == wanted]
