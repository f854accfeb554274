"""
LLM Abstraction Layer — structured output from the reasoning model.

Modules:
- llm_config: ModelProfile definitions and provider defaults
- router: ModelRouter — schema-constrained completion over OpenAI/Anthropic
"""
