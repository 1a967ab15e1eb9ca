"""
Terminal front-end that streams completions from a local llama-server model.
"""
