"""DecisionLedger - Services

持久化相关的编排服务：重算、记录生命周期、证据金库、审计日志。
"""
