import asyncio

from observable_collection import Collection


def log(label):
    return dict(
        on_next=lambda value: print(f"{label}: next -> {value}"),
        on_error=lambda error: print(f"{label}: error -> {error!r}"),
        on_completed=lambda: print(f"{label}: complete"),
    )


async def main():
    # ------------------------------------------------------------------------------------------------

    print()
    print("=" * 100)
    print("Inserting a document")
    print("-" * 100)
    print()

    todos = Collection("todos")

    # Subscribe in the same turn as the call, before awaiting anything.
    todos.insert({"title": "write docs", "done": False}).subscribe(**log("insert"))
    todos.insert({"title": "ship it", "done": False}).subscribe(**log("insert"))
    await asyncio.sleep(0)

    # ------------------------------------------------------------------------------------------------

    print()
    print("=" * 100)
    print("Watching a live query")
    print("-" * 100)
    print()

    open_todos = todos.find({"done": False}, {"sort": {"title": 1}})
    subscription = open_todos.subscribe(
        on_next=lambda docs: print(f"open: {[doc['title'] for doc in docs]}")
    )

    # The query re-emits whenever the collection changes.
    todos.update({"title": "ship it"}, {"$set": {"done": True}}).subscribe(**log("update"))
    await asyncio.sleep(0)

    # Once disposed, the query stops following the collection.
    subscription.dispose()

    # ------------------------------------------------------------------------------------------------

    print()
    print("=" * 100)
    print("Sharing one outcome and failing loudly")
    print("-" * 100)
    print()

    # Both subscribers see the result of one single remove.
    removal = todos.remove({"done": True})
    removal.subscribe(**log("remove #1"))
    removal.subscribe(**log("remove #2"))

    # Errors never raise from the call, they arrive on on_error.
    todos.insert({"_id": "fixed"}).subscribe(**log("first"))
    todos.insert({"_id": "fixed"}).subscribe(**log("duplicate"))
    await asyncio.sleep(0)

    # Subscribing after the outcome was delivered hears nothing.
    removal.subscribe(**log("too late"))


if __name__ == "__main__":
    asyncio.run(main())
