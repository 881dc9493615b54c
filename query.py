"""Translate ``where``/``sort``/``select``/``skip``/``limit``/``count`` query
parameters into SQLAlchemy criteria plus post-processing instructions.

The filter language is the document-store one clients already speak::

    {"completed": false, "_id": {"$in": ["...", "..."]}}

Field names are the API names (``assignedUser``), mapped to columns through
each model's ``FIELDS`` table.
"""

from dataclasses import dataclass, field
import json

from extensions import db
from errors import BadRequest, NotFound
from validators import is_valid_id, parse_datetime, parse_bool

INVALID_QUERY = "Bad request - Invalid query parameters"

COMPARISONS = {
    "$gt": lambda column, value: column > value,
    "$gte": lambda column, value: column >= value,
    "$lt": lambda column, value: column < value,
    "$lte": lambda column, value: column <= value,
}
SORT_DIRECTIONS = {
    1: "asc", -1: "desc",
    "1": "asc", "-1": "desc",
    "asc": "asc", "ascending": "asc",
    "desc": "desc", "descending": "desc",
}


@dataclass
class QuerySpec:
    where: dict = field(default_factory=dict)
    sort: dict = field(default_factory=dict)
    select: dict = field(default_factory=dict)
    skip: int = 0
    limit: int = 0
    count: bool = False
    single_id: bool = False   # where._id is a plain id: zero hits means 404
    empty: bool = False       # answer is known to be empty without asking the store


def _json_arg(args, name):
    raw = args.get(name)
    if raw is None or raw.strip() == "":
        return {}
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise BadRequest(INVALID_QUERY, str(exc)) from exc
    if not isinstance(value, dict):
        raise BadRequest(INVALID_QUERY, f"{name} must be a JSON object")
    return value


def _int_arg(args, name):
    raw = args.get(name)
    if raw is None or raw.strip() == "":
        return 0
    try:
        value = int(raw)
    except ValueError as exc:
        raise BadRequest(INVALID_QUERY, f"{name} must be an integer") from exc
    if value < 0:
        raise BadRequest(INVALID_QUERY, f"{name} must not be negative")
    return value


def parse_select(args):
    select = _json_arg(args, "select")
    check_projection(select)
    return select


def parse_query(args, default_limit=0):
    spec = QuerySpec(
        where=_json_arg(args, "where"),
        sort=_json_arg(args, "sort"),
        select=parse_select(args),
        skip=_int_arg(args, "skip"),
        limit=_int_arg(args, "limit") or default_limit,
        count=args.get("count") == "true",
    )
    for direction in spec.sort.values():
        if isinstance(direction, bool) or not isinstance(direction, (int, str)) \
                or direction not in SORT_DIRECTIONS:
            raise BadRequest(INVALID_QUERY, f"unsupported sort direction {direction!r}")
    return sanitize_ids(spec)


def sanitize_ids(spec):
    """Drop malformed ids from ``_id`` filters before they reach the store."""
    cond = spec.where.get("_id")
    if isinstance(cond, str):
        spec.single_id = True
        spec.empty = not is_valid_id(cond)
    elif isinstance(cond, dict):
        cond = dict(cond)
        if isinstance(cond.get("$in"), list):
            cond["$in"] = [i for i in cond["$in"] if is_valid_id(i)]
            spec.empty = not cond["$in"]
        if isinstance(cond.get("$nin"), list):
            cond["$nin"] = [i for i in cond["$nin"] if is_valid_id(i)]
        spec.where = {**spec.where, "_id": cond}
    return spec


def check_projection(select):
    included = {name for name, flag in select.items() if flag}
    excluded = {name for name, flag in select.items() if not flag}
    if included and excluded - {"_id"}:
        raise BadRequest(INVALID_QUERY, "projection cannot mix inclusion and exclusion")


def apply_projection(doc, select):
    if not select:
        return doc
    included = {name for name, flag in select.items() if flag}
    excluded = {name for name, flag in select.items() if not flag}
    if included:
        if "_id" not in excluded:
            included.add("_id")
        return {key: value for key, value in doc.items() if key in included}
    return {key: value for key, value in doc.items() if key not in excluded}


def column_for(model, name):
    try:
        return getattr(model, model.FIELDS[name])
    except KeyError:
        raise BadRequest(INVALID_QUERY, f"unknown field {name!r}") from None


def coerce(model, name, value):
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise BadRequest(INVALID_QUERY, f"unexpected structured value for {name}")
    column_type = model.__table__.c[model.FIELDS[name]].type
    if isinstance(column_type, db.DateTime):
        try:
            return parse_datetime(value)
        except (ValueError, OverflowError, OSError) as exc:
            raise BadRequest(INVALID_QUERY, f"invalid date for {name}: {value!r}") from exc
    if isinstance(column_type, db.Boolean):
        try:
            return parse_bool(value, name)
        except BadRequest as exc:
            raise BadRequest(INVALID_QUERY, exc.message) from exc
    return value


def _contains(column, value):
    return db.cast(column, db.Text).contains(json.dumps(value), autoescape=True)


def _compile_op(model, name, op, operand):
    column = column_for(model, name)
    is_list = name in getattr(model, "LIST_FIELDS", ())

    if op in ("$in", "$nin"):
        if not isinstance(operand, list):
            raise BadRequest(INVALID_QUERY, f"{op} expects an array")
        if is_list:
            clause = db.or_(*[_contains(column, v) for v in operand]) if operand else db.false()
        else:
            clause = column.in_([coerce(model, name, v) for v in operand])
        return db.not_(clause) if op == "$nin" else clause

    if op in ("$eq", "$ne"):
        if is_list:
            clause = _contains(column, operand)
            return db.not_(clause) if op == "$ne" else clause
        value = coerce(model, name, operand)
        if value is None:
            return column.is_(None) if op == "$eq" else column.is_not(None)
        return column == value if op == "$eq" else column != value

    if op in COMPARISONS:
        if is_list:
            raise BadRequest(INVALID_QUERY, f"{op} is not supported on {name}")
        return COMPARISONS[op](column, coerce(model, name, operand))

    raise BadRequest(INVALID_QUERY, f"unsupported operator {op!r}")


def compile_filter(model, where):
    if not isinstance(where, dict):
        raise BadRequest(INVALID_QUERY, "where must be a JSON object")
    clauses = []
    for name, cond in where.items():
        if isinstance(cond, dict):
            if not cond or not all(key.startswith("$") for key in cond):
                raise BadRequest(INVALID_QUERY, f"invalid condition for {name}")
            clauses.extend(_compile_op(model, name, op, operand) for op, operand in cond.items())
        else:
            clauses.append(_compile_op(model, name, "$eq", cond))
    return clauses


def compile_sort(model, sort):
    order = []
    for name, direction in sort.items():
        if name in getattr(model, "LIST_FIELDS", ()):
            raise BadRequest(INVALID_QUERY, f"cannot sort on {name}")
        column = column_for(model, name)
        order.append(column.desc() if SORT_DIRECTIONS[direction] == "desc" else column.asc())
    return order


def run_query(collection, spec, not_found_message):
    """Execute ``spec`` against ``collection``; return a list of documents or a count."""
    if spec.empty:
        if spec.count:
            return 0
        if spec.single_id:
            raise NotFound(not_found_message)
        return []
    if spec.count:
        return collection.count(spec.where, skip=spec.skip, limit=spec.limit)
    docs = collection.find(spec.where, sort=spec.sort, skip=spec.skip, limit=spec.limit)
    if not docs and spec.single_id:
        raise NotFound(not_found_message)
    return [apply_projection(doc.to_dict(), spec.select) for doc in docs]
