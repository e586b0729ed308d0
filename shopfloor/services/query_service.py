# shopfloor/services/query_service.py
import logging
from typing import Any, Dict, List, Optional, Tuple

from shopfloor.core.db import Database
from shopfloor.models.user import ROLE_ADMIN

logger = logging.getLogger(__name__)

PART_SEARCH_COLUMNS = ("part_mark", "assembly_mark", "material")
USER_SEARCH_COLUMNS = ("first_name", "last_name", "email")

AUDIT_SELECT = """
    SELECT a.id, a.timestamp, a.user_id, a.action, a.row_id, a.diff, a.created_at,
           u.first_name || ' ' || u.last_name AS user_name,
           u.email AS user_email
    FROM audit_log a
    LEFT JOIN users u ON u.id = a.user_id
"""
AUDIT_COUNT = "SELECT COUNT(*) FROM audit_log a"


def is_admin(acting_user) -> bool:
    return getattr(acting_user, "role", None) == ROLE_ADMIN


def search_clause(columns, search: Optional[str]) -> Tuple[List[str], Dict[str, Any]]:
    """OR together a substring match over the given columns"""
    if not search:
        return [], {}
    conditions = " OR ".join(f"{column} LIKE :search" for column in columns)
    return [f"({conditions})"], {"search": f"%{search}%"}


def paginated(
        db: Database,
        select_sql: str,
        count_sql: str,
        where: List[str],
        params: Dict[str, Any],
        order_by: str,
        page: int,
        limit: int
) -> Dict[str, Any]:
    """
    Run a page query and a count query sharing the same filter predicates.

    Pages are 1-based; the total is independent of the page window.
    """
    where_sql = f" WHERE {' AND '.join(where)}" if where else ""
    offset = (page - 1) * limit

    rows = db.select_all(
        f"{select_sql}{where_sql} ORDER BY {order_by} LIMIT :limit OFFSET :offset",
        {**params, "limit": limit, "offset": offset}
    )
    total = db.scalar_count(f"{count_sql}{where_sql}", params)

    return {"data": rows, "total": total, "page": page, "limit": limit}


class QueryService:
    """Paginated, filtered and role-scoped reads"""

    def __init__(self, db: Database):
        self.db = db

    def list_parts(self, search: Optional[str] = None, page: int = 1, limit: int = 100) -> Dict[str, Any]:
        where, params = search_clause(PART_SEARCH_COLUMNS, search)
        return paginated(
            self.db,
            "SELECT * FROM parts",
            "SELECT COUNT(*) FROM parts",
            where, params,
            order_by="created_at DESC, id DESC",
            page=page, limit=limit
        )

    def list_audit_entries(
            self,
            page: int = 1,
            limit: int = 100,
            action: Optional[str] = None,
            row_id: Optional[int] = None,
            acting_user=None
    ) -> Dict[str, Any]:
        """Audit history, newest first. Non-admin callers only see their own entries."""
        where = []
        params: Dict[str, Any] = {}

        if action:
            where.append("a.action = :action")
            params["action"] = action

        if row_id is not None:
            where.append("a.row_id = :row_id")
            params["row_id"] = row_id

        if not is_admin(acting_user):
            # An anonymous caller has no id and therefore matches nothing
            where.append("a.user_id = :caller_id")
            params["caller_id"] = getattr(acting_user, "id", None)

        return paginated(
            self.db, AUDIT_SELECT, AUDIT_COUNT, where, params,
            order_by="a.timestamp DESC, a.id DESC",
            page=page, limit=limit
        )

    def list_users(self, search: Optional[str] = None, page: int = 1, limit: int = 100) -> Dict[str, Any]:
        where, params = search_clause(USER_SEARCH_COLUMNS, search)
        return paginated(
            self.db,
            "SELECT id, email, first_name, last_name, role, is_active, created_at, updated_at FROM users",
            "SELECT COUNT(*) FROM users",
            where, params,
            order_by="created_at DESC, id DESC",
            page=page, limit=limit
        )
