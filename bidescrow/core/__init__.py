"""Auction engine, configuration and fund-transfer collaborators"""
