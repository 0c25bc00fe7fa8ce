#!/usr/bin/env python3
# Example usage of embedded_json_table_db

import os
from rich.console import Console
from rich.table import Table

from embedded_json_table_db import Database, setup_logging

console = Console()

def show(title, rows):
    if not rows:
        console.print(f"[bold]{title}[/bold]: (empty)")
        return
    cols = list(dict.fromkeys(k for r in rows for k in r))
    t = Table(title=title)
    for c in cols:
        t.add_column(c)
    for r in rows:
        t.add_row(*(str(r.get(c, "")) for c in cols))
    console.print(t)

def main() -> None:
    setup_logging("INFO", "console")
    path = os.path.join(os.path.dirname(__file__), "demo.json")

    # Buffered writes, flushed every 500 ms and on close
    with Database(path, cache={"interval": 500}, spaces=4) as db:
        db.create("users")
        db.clear("users")
        db.insert(
            "users",
            {"name": "Tom", "age": 19, "hobbies": ["Swimming"]},
            {"name": "Ann", "age": 31, "hobbies": ["Chess"]},
            {"name": "Bob", "age": 24, "hobbies": []},
        )

        adults = db.find("users", {"age": lambda a: a >= 21}, sort={"age": -1}, fields=["name", "age"])
        show("Adults, oldest first", adults)

        db.update("users", {"name": lambda n: n == "Tom"}, {"age": 20})
        show("Tom", db.find("users", {"name": lambda n: n == "Tom"}))

        removed = db.delete("users", {"hobbies": lambda h: not h})
        console.print(f"Removed records without hobbies: {removed}")
        console.print(f"Tables: {db.size()}, users: {db.size('users')}")

if __name__ == "__main__":
    main()
