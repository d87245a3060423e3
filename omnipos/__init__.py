"""OmniPOS ledger service: products, customers and transactional order placement."""
