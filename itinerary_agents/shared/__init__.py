"""
Shared infrastructure for all stages.

Modules:
- llm: Async OpenAI-compatible provider client and pricing
- logging: Structured JSON logging
- contracts: Request and stage output contracts for handoffs
"""
