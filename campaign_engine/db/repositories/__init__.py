from campaign_engine.db.repositories.agent_states import AgentStatesRepository
from campaign_engine.db.repositories.meta_connections import MetaConnectionsRepository
