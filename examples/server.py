# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "waypoint[server]",
# ]
#
# [tool.uv.sources]
# waypoint = { path = "../", editable = true }
# ///
"""RSGI server demo.

Fully functional web server using Granian + a waypoint Dispatcher.
"""

import asyncio
import logging
import sqlite3

from granian.server.embed import Server

from waypoint import App, Config, Dispatcher, Fail, RequestContext

ADDRESS = "127.0.0.1"
PORT = 8000

# dispatch runs on worker threads
_db = sqlite3.connect(":memory:", check_same_thread=False)
_db.cursor().executescript("""
CREATE TABLE IF NOT EXISTS user (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
""")


async def main() -> None:
    logging.basicConfig(level=logging.INFO)

    dispatcher = Dispatcher(Config.from_env())
    dispatcher.add_global_header("X-Content-Type-Options", "nosniff")
    dispatcher.use(log_request)
    dispatcher.get("/", home)
    dispatcher.get("/user", get_users(_db))
    dispatcher.get("/user/{id}", get_user(_db), validators={"id": r"\d+"})
    dispatcher.post("/user", create_user(_db), middleware=[require_name])
    dispatcher.patch(
        "/user/{id}",
        update_user(_db),
        validators={"id": r"\d+"},
        middleware=[require_name],
    )
    print(dispatcher.table.format_routes())

    server = Server(App(dispatcher), address=ADDRESS, port=PORT, log_access=True)
    try:
        await server.serve()
    except asyncio.CancelledError:
        pass


def log_request(ctx: RequestContext) -> None:
    logging.getLogger("example").info("%s %s", ctx.method.value, ctx.request_path)


def require_name(ctx: RequestContext) -> Fail | None:
    if not ctx.body_params.get("name"):
        return Fail(422, {"error": "missing name"})
    return None


def home(ctx: RequestContext) -> dict[str, str]:
    return {"message": "Welcome home"}


# closure over handler to inject dependencies
def get_users(db: sqlite3.Connection):
    def handler(ctx: RequestContext) -> list[dict]:
        cur = db.cursor()
        cur.execute("SELECT * FROM user")
        return [{"id": row[0], "name": row[1]} for row in cur.fetchall()]

    return handler


def get_user(db: sqlite3.Connection):
    def handler(ctx: RequestContext) -> dict | Fail:
        cur = db.cursor()
        cur.execute("SELECT * FROM user WHERE id = ?", (ctx.route_params["id"],))
        result = cur.fetchone()
        if result is None:
            return Fail(404, {"error": "not found"})
        return {"id": result[0], "name": result[1]}

    return handler


def create_user(db: sqlite3.Connection):
    def handler(ctx: RequestContext) -> dict:
        cur = db.cursor()
        cur.execute(
            "INSERT INTO user (name) VALUES (?) RETURNING *", (ctx.body_params["name"],)
        )
        result = cur.fetchone()
        ctx.response_status = 201
        return {"id": result[0], "name": result[1]}

    return handler


def update_user(db: sqlite3.Connection):
    def handler(ctx: RequestContext) -> dict | Fail:
        cur = db.cursor()
        cur.execute(
            "UPDATE user SET name = ? WHERE id = ? RETURNING *",
            (ctx.body_params["name"], ctx.route_params["id"]),
        )
        result = cur.fetchone()
        if result is None:
            return Fail(404, {"error": "not found"})
        return {"id": result[0], "name": result[1]}

    return handler


if __name__ == "__main__":
    asyncio.run(main())
