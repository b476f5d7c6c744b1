import asyncio
from database.db_client import SupabaseClient


async def toggle_admin():
    """
    Grants or revokes the admin role used by the MCQ management endpoints.
    """
    db = SupabaseClient()
    connected = await db.connect()

    if not connected:
        print("Failed to connect to Supabase.")
        return

    print("Fetching recent users...")
    users = await db.list_users()

    if not users:
        print("No users found in database.")
        return

    print(f"\nFound {len(users)} users. Showing first 10:")
    for i, u in enumerate(users[:10]):
        print(f"[{i+1}] {u.name} (ID: {u.user_id}) - Role: {u.role}")

    choice = input("\nEnter number to toggle admin role (or 0 to exit): ")
    try:
        idx = int(choice) - 1
    except ValueError:
        print("Not a number.")
        return
    if idx < 0 or idx >= min(len(users), 10):
        return

    target = users[idx]
    new_role = "admin" if target.role != "admin" else "user"
    await db.update_user(target.user_id, {"role": new_role})
    print(f"\n✅ Success! {target.name} is now {new_role.upper()}.")


if __name__ == "__main__":
    asyncio.run(toggle_admin())
