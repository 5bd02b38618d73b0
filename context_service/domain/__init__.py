# Context lifecycle
#
# +---------------------+          +---------------------+
# |   HTTP handlers     |          |  Message channel    |
# |---------------------|          |---------------------|
# | /contexts           |          | REQUEST envelopes   |
# | /context-histories  |          | (topic / websocket) |
# +---------------------+          +---------------------+
#           |                                 |
#           |                                 v
#           |                      +---------------------+
#           |                      |   EnvelopeRouter    |
#           |                      | kind/type/action    |
#           |                      | -> RESPONSE / ERROR |
#           |                      +---------------------+
#           |                                 |
#           v                                 v
# +--------------------------------------------------------+
# |                    ContextService                      |
# | create (v1) | update (CAS on id+version) | soft delete |
# +--------------------------------------------------------+
#           |                                 |
#           v                                 v
# +---------------------+          +---------------------+
# |    ContextStore     |          | ContextHistoryStore |
# | current documents   |          | append-only         |
# +---------------------+          | pre-update snapshots|
#                                  +---------------------+
