"""Permission layer for the Kubernetes chat bot.

Decides whether a chat principal may run a verb against a resource type in a
namespace, from a stored per-principal grant list:
- grant/revoke keep the list compact (merge by namespace+selector, partial removal)
- "*" works for namespaces, resources and verbs
- selector-scoped grants are checked against the instance's live labels
"""
