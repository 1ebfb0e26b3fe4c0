"""Reference data: roles, groups and the built-in request types."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.models.request import RequestKind, RequestType
from herdit.models.user import Group, Role
from herdit.utils.logging import get_logger

logger = get_logger(__name__)

ROLES = [
    {"name": "admin", "description": "Full access, approves any request"},
    {"name": "manager", "description": "Approves requests of their groups"},
    {"name": "user", "description": "Submits and follows their own requests"},
]

GROUPS = [
    {"name": "IT", "description": "IT department with access to change requests"},
    {"name": "Corporate", "description": "Corporate department with access to asset requests"},
]

CHANGE_REQUEST_TYPE = "IT Change Request"
ASSET_REQUEST_TYPE = "Asset Request"

REQUEST_TYPES = [
    {
        "name": CHANGE_REQUEST_TYPE,
        "description": "Request for changes to IT infrastructure or systems",
        "kind": RequestKind.CHANGE,
        "group": "IT",
        "form_schema": {
            "fields": [
                {"name": "title", "type": "string", "required": True},
                {"name": "description", "type": "text", "required": True},
                {"name": "change_type", "type": "select", "required": True,
                 "options": ["hardware", "software", "network", "other"]},
                {"name": "priority", "type": "select", "required": True,
                 "options": ["low", "medium", "high", "critical"]},
                {"name": "implementation_date", "type": "date", "required": True},
                {"name": "impact", "type": "text", "required": True},
                {"name": "rollback_plan", "type": "text", "required": True},
                {"name": "attachments", "type": "file", "required": False, "multiple": True,
                 "accept": ["*/*"], "max_size": 10485760},
            ]
        },
    },
    {
        "name": ASSET_REQUEST_TYPE,
        "description": "Request for new hardware, software, or other assets",
        "kind": RequestKind.ASSET,
        "group": "Corporate",
        "form_schema": {
            "fields": [
                {"name": "title", "type": "string", "required": True},
                {"name": "asset_type", "type": "select", "required": True,
                 "options": ["hardware", "software", "peripheral", "other"]},
                {"name": "asset_category", "type": "select", "required": True,
                 "options": ["laptop", "desktop", "monitor", "software", "mobile", "accessory", "other"]},
                {"name": "quantity", "type": "number", "required": True, "min": 1},
                {"name": "justification", "type": "text", "required": True},
                {"name": "needed_by", "type": "date", "required": True},
                {"name": "additional_info", "type": "text", "required": False},
            ]
        },
    },
]


async def seed_reference_data(db: AsyncSession) -> dict[str, int]:
    """Create missing roles, groups and request types. Safe to run repeatedly."""
    counts = {"roles": 0, "groups": 0, "request_types": 0}

    existing_roles = {r.name for r in (await db.execute(select(Role))).scalars().all()}
    for role in ROLES:
        if role["name"] not in existing_roles:
            db.add(Role(**role))
            counts["roles"] += 1

    groups = {g.name: g for g in (await db.execute(select(Group))).scalars().all()}
    for group in GROUPS:
        if group["name"] not in groups:
            groups[group["name"]] = Group(**group)
            db.add(groups[group["name"]])
            counts["groups"] += 1
    await db.flush()

    existing_types = {t.name for t in (await db.execute(select(RequestType))).scalars().all()}
    for entry in REQUEST_TYPES:
        if entry["name"] in existing_types:
            continue
        db.add(RequestType(
            name=entry["name"],
            description=entry["description"],
            kind=entry["kind"],
            group_id=groups[entry["group"]].id,
            form_schema=entry["form_schema"],
        ))
        counts["request_types"] += 1
    await db.flush()

    logger.info("Reference data seeded: %s", counts)
    return counts
