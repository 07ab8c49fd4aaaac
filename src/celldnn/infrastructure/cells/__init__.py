"""
Cell types and their backend kernels.
"""

from ._cell import Cell, WeightedCell
from ._fc_cell import FcCell, FcFrameKernel, FcCudaKernel
from ._conv_cell import ConvCell, ConvFrameKernel, ConvCudaKernel
from ._deconv_cell import DeconvCell, DeconvFrameKernel, DeconvCudaKernel
from ._pool_cell import PoolCell, PoolFrameKernel, PoolCudaKernel
from ._batchnorm_cell import BatchNormCell, BatchNormFrameKernel, BatchNormCudaKernel
from ._proposal_cell import ProposalCell, ProposalFrameKernel, ProposalCudaKernel
