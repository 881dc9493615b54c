# tests/helpers.py

DEADLINE = "2030-01-01T12:00:00.000Z"
MISSING_ID = "0" * 24


class ApiClient:
    """
    Thin wrapper over the Flask test client for the /api routes.

    ``create_*`` assert the 201 and return the created document; the other
    methods return the raw response so tests can check status and body.
    """

    def __init__(self, client) -> None:
        self.client = client
        self._emails = 0

    def email(self) -> str:
        self._emails += 1
        return f"user{self._emails}@example.com"

    def create_user(self, name="Ann", email=None, pending=None) -> dict:
        body = {"name": name, "email": email or self.email()}
        if pending is not None:
            body["pendingTasks"] = pending
        resp = self.client.post("/api/users", json=body)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]

    def create_task(self, name="Task", deadline=DEADLINE, **fields) -> dict:
        resp = self.client.post("/api/tasks", json={"name": name, "deadline": deadline, **fields})
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]

    def user(self, user_id) -> dict:
        resp = self.client.get(f"/api/users/{user_id}")
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]

    def task(self, task_id) -> dict:
        resp = self.client.get(f"/api/tasks/{task_id}")
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]

    def put_task(self, task, **changes):
        body = {
            "name": task["name"],
            "description": task["description"],
            "deadline": task["deadline"],
            "completed": task["completed"],
            "assignedUser": task["assignedUser"],
        }
        body.update(changes)
        return self.client.put(f"/api/tasks/{task['_id']}", json=body)

    def put_user(self, user, **changes):
        body = {"name": user["name"], "email": user["email"], "pendingTasks": user["pendingTasks"]}
        body.update(changes)
        return self.client.put(f"/api/users/{user['_id']}", json=body)
