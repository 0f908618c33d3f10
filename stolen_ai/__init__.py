"""STOLEN device matching engine"""
