import torch

# GRU language model configuration

# --- Data parameters ---
# vocab_size: The number of hash slots words are mapped into.
vocab_size = 31

# --- Model architecture ---
# embedding_dim: The dimensionality of the token embeddings.
embedding_dim = 30

# hidden_dim: The number of features in the hidden state of the GRU.
hidden_dim = 25

# --- Initialisation gains (Glorot normal) ---
# gru_gain: Gain for the nine GRU weight matrices.
gru_gain = 1.0

# embedding_gain: Gain for the embedding matrix.
embedding_gain = 0.8

# decoder_gain: Gain for the decoder weight matrix.
decoder_gain = 0.8

# decoder_bias_gain: Gain for the decoder bias vector.
decoder_bias_gain = 0.08

# --- Numerics ---
# dtype: Floating point type of every parameter tensor.
dtype = torch.float32

# seed: Seed for the parameter initialisation generator (None for random).
seed = None
