"""Meeting bot vendors -- provider adapters and the router that selects between them.

Two vendors implement the BotProviderAdapter contract: Recall.ai and
Meeting BaaS. BotServiceRouter picks the active one for new dispatches and
routes status/transcript/teardown calls to the vendor an event was
dispatched with.
"""
