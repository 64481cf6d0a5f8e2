"""PlantLife: social network backend for plant-care communities.

Modules:
    - storage: interchangeable persistence adapters (relational, document, memory)
    - services: identity, social graph, content, engagement, timeline,
      notifications, verification and moderation logic
    - routes: FastAPI routers (HTTP + push channel)
"""

__version__ = "0.1.0"
