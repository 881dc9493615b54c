"""Document-store style access to the ``tasks`` and ``users`` tables.

Every write commits on its own, so a multi-step mutation is a sequence of
independent writes rather than one transaction.
"""

from contextlib import contextmanager
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from errors import DuplicateKey, StoreError
from models import Task, User
from query import column_for, compile_filter, compile_sort
from validators import dedupe, is_valid_id

log = logging.getLogger(__name__)

PATCH_OPERATORS = ("$set", "$pull", "$addToSet")


def _is_unique_violation(detail):
    # sqlite: "UNIQUE constraint failed", postgres: "... unique constraint \"uq_...\"", mysql: "Duplicate entry"
    text = detail.lower()
    return "unique" in text or "duplicate" in text


class Collection:

    def __init__(self, model):
        self.model = model
        self.name = model.__tablename__

    @contextmanager
    def _guard(self):
        try:
            yield
        except IntegrityError as exc:
            db.session.rollback()
            detail = str(exc.orig)
            if _is_unique_violation(detail):
                raise DuplicateKey(f"Duplicate key in {self.name}", detail) from exc
            log.exception("constraint violation on %s", self.name)
            raise StoreError(f"Error accessing {self.name}", detail) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            log.exception("store operation on %s failed", self.name)
            raise StoreError(f"Error accessing {self.name}", str(exc)) from exc

    def _query(self, where):
        return self.model.query.filter(*compile_filter(self.model, where or {}))

    def find(self, where=None, sort=None, skip=0, limit=0):
        query = self._query(where)
        order = compile_sort(self.model, sort or {})
        with self._guard():
            if order:
                query = query.order_by(*order)
            if skip:
                query = query.offset(skip)
            if limit:
                query = query.limit(limit)
            return query.all()

    def find_one(self, where):
        query = self._query(where)
        with self._guard():
            return query.first()

    def find_by_id(self, doc_id):
        if not is_valid_id(doc_id):
            return None
        with self._guard():
            return db.session.get(self.model, doc_id)

    def count(self, where=None, skip=0, limit=0):
        """Size of the result set after ``skip``/``limit`` are applied."""
        query = self._query(where)
        with self._guard():
            if skip:
                query = query.offset(skip)
            if limit:
                query = query.limit(limit)
            return query.count()

    def insert(self, doc):
        with self._guard():
            db.session.add(doc)
            db.session.commit()
        return doc

    def save(self, doc):
        with self._guard():
            db.session.commit()
        return doc

    def delete_by_id(self, doc_id):
        """Remove a document and return what it held, or None if absent."""
        doc = self.find_by_id(doc_id)
        if doc is None:
            return None
        removed = doc.to_dict()
        with self._guard():
            db.session.delete(doc)
            db.session.commit()
        return removed

    def update_many(self, where, patch):
        """Apply ``patch`` to every matching document, return how many matched.

        ``$set`` alone runs as one bulk UPDATE. ``$pull``/``$addToSet`` edit
        list fields document by document and are no-ops when already applied.
        """
        unknown = set(patch) - set(PATCH_OPERATORS)
        if unknown:
            raise ValueError(f"unsupported patch operators: {sorted(unknown)}")

        query = self._query(where)
        with self._guard():
            if set(patch) == {"$set"}:
                values = {column_for(self.model, name): value for name, value in patch["$set"].items()}
                matched = query.update(values, synchronize_session=False)
            else:
                docs = query.all()
                for doc in docs:
                    self._apply(doc, patch)
                matched = len(docs)
            db.session.commit()
        return matched

    def _apply(self, doc, patch):
        for name, value in patch.get("$set", {}).items():
            setattr(doc, self.model.FIELDS[name], value)
        for name, value in patch.get("$pull", {}).items():
            attr = self._list_attr(name)
            drop = set(value["$in"]) if isinstance(value, dict) else {value}
            current = list(getattr(doc, attr) or [])
            kept = [item for item in current if item not in drop]
            if kept != current:
                setattr(doc, attr, kept)
        for name, value in patch.get("$addToSet", {}).items():
            attr = self._list_attr(name)
            extra = value["$each"] if isinstance(value, dict) else [value]
            current = list(getattr(doc, attr) or [])
            grown = dedupe(current + list(extra))
            if grown != current:
                setattr(doc, attr, grown)

    def _list_attr(self, name):
        if name not in self.model.LIST_FIELDS:
            raise ValueError(f"{name} is not a list field of {self.name}")
        return self.model.FIELDS[name]


tasks = Collection(Task)
users = Collection(User)
