"""
Job queues — decouple external triggers from task execution.

- Triggers and processors ENQUEUE jobs onto named queues
- One consumer loop per queue DEQUEUES and hands jobs to the dispatcher
- Supports Redis (production) and in-memory asyncio.Queue (dev)
"""
