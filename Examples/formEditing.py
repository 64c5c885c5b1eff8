import asyncio
from formundo import HistoryManager, NOTHING


def typeText(history, form, field, text):
    # one update per keystroke, like a text input would send them
    for i in range(1, len(text) + 1):
        form = dict(form, **{field: text[:i]})
        history.update(form, description=f"edit {field}")
    return form


async def main():
    changes = []
    history = HistoryManager(
        {"name": "", "email": "", "password": "", "address": {"city": ""}},
        debounceMs=20,
        excludeFields=["password"],
    )
    unsubscribe = history.subscribe(changes.append)

    form = history.getCurrentState()
    form = typeText(history, form, "name", "Jane")
    await asyncio.sleep(0.1)
    form = typeText(history, form, "email", "jane@example.com")
    await asyncio.sleep(0.1)
    form = dict(form, password="hunter2")
    history.update(form)
    await asyncio.sleep(0.1)
    history.snapshot(dict(form, address={"city": "Utrecht"}), description="move")

    info = history.getInfo()
    assert info.size == 3, info
    assert [s.metadata["affectedFields"] for s in info.snapshots] == [
        ["name"], ["email"], ["address.city"]]
    assert len(changes) == 3

    assert history.undo()["address"] == {"city": ""}
    assert history.undo()["email"] == ""
    state = history.redo()
    assert state["email"] == "jane@example.com"
    assert state["password"] == "hunter2"

    assert history.jumpTo(-1)["name"] == ""
    assert history.undo() is NOTHING
    assert history.jumpTo(2)["address"]["city"] == "Utrecht"

    unsubscribe()
    history.destroy()
    assert len(changes) == 6


if __name__ == "__main__":
    asyncio.run(main())
