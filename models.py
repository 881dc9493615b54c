from extensions import db
from datetime import datetime, timezone
import secrets

UNASSIGNED = "unassigned"


def new_object_id():
    return secrets.token_hex(12)   # 24 hex characters, same shape as a document-store id


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_datetime(value):
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


class Task(db.Model):                                 # Model for storing the details of a task
    __tablename__ = "tasks"

    FIELDS = {
        "_id": "id",
        "name": "name",
        "description": "description",
        "deadline": "deadline",
        "completed": "completed",
        "assignedUser": "assigned_user",
        "assignedUserName": "assigned_user_name",
        "dateCreated": "date_created",
    }
    LIST_FIELDS = set()

    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    deadline = db.Column(db.DateTime, nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    assigned_user = db.Column(db.String(24), nullable=False, default="", index=True)   # "" when unassigned
    assigned_user_name = db.Column(db.String(200), nullable=False, default=UNASSIGNED)
    date_created = db.Column(db.DateTime, nullable=False, default=utcnow)   # never touched after insert

    def to_dict(self):
        return {
            "_id": self.id,
            "name": self.name,
            "description": self.description,
            "deadline": format_datetime(self.deadline),
            "completed": self.completed,
            "assignedUser": self.assigned_user,
            "assignedUserName": self.assigned_user_name,
            "dateCreated": format_datetime(self.date_created),
        }

    def __repr__(self):
        return f"<Task {self.id} {self.name!r}>"


class User(db.Model):                     # Model for storing user data
    __tablename__ = "users"

    FIELDS = {
        "_id": "id",
        "name": "name",
        "email": "email",
        "pendingTasks": "pending_tasks",
        "dateCreated": "date_created",
    }
    LIST_FIELDS = {"pendingTasks"}

    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False)
    pending_tasks = db.Column(db.JSON, nullable=False, default=list)   # ids of assigned, not completed tasks
    date_created = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "_id": self.id,
            "name": self.name,
            "email": self.email,
            "pendingTasks": list(self.pending_tasks or []),
            "dateCreated": format_datetime(self.date_created),
        }

    def __repr__(self):
        return f"<User {self.email}>"
