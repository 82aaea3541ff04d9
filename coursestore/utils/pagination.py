from sqlalchemy import func
from sqlmodel import select

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def paginate(*, session, query, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
    """
    Run ``query`` one page at a time.

    Out-of-range arguments are clamped rather than rejected. The query's
    own ordering is kept, so callers decide what "newest first" means.
    """
    page = max(page, 1)
    limit = min(limit, MAX_PAGE_SIZE) if limit >= 1 else DEFAULT_PAGE_SIZE

    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    rows = session.exec(query.offset((page - 1) * limit).limit(limit)).all()

    return {
        "total_items": total,
        "total_pages": -(-total // limit),
        "current_page": page,
        "limit": limit,
        "results": rows,
    }
