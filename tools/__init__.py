"""
Research tools available to the searcher agent.
"""
