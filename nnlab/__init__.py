"""
nnlab: mini-batch trained feed-forward and convolutional neural networks.
"""
__version__ = "0.1.0"
