REDIS_ROOMS_KEY = "rooms" # JSON array of every live room, connection ids excluded

# **Example `rooms` record**
# - `roomId` / `id` = room id
# - `challenge` = opaque challenge blob
# - `phase` = waiting | active
# - `started` = bool, mirrors phase for older snapshots
# - `createdAt` / `startedAt` = ISO timestamps
# - `users` = [{"email": ..., "userData": {...}}] in join order
