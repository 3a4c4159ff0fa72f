"""trustflow - prompt routing and SIA analysis orchestration.

Pipeline:
- Classifier: free text -> vertical, use case, entities, intent
- Binder: classification + use-case catalog -> bound, customized workflow
- Executor: dependency-gated execution of analysis capabilities
- Scoring: step results -> Security / Integrity / Accuracy scores
"""

__version__ = "0.1.0"
