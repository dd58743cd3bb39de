"""MapForge pipelines — 端到端转换管线"""
