"""
Volume attach controller process
"""
