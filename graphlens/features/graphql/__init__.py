"""GraphQL observation: analysis, subscriptions, host engine adapters."""
