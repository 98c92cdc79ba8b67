# network.py

import torch
import torch.nn as nn
import torch.nn.functional as F

def conv3x3(in_channels, out_channels):
    return nn.Conv2d(in_channels, out_channels, kernel_size=3, stride=1, padding=1, bias=False)

class EvarResBlock(nn.Module):
    def __init__(self, num_channels):
        super().__init__()
        self.conv1 = conv3x3(num_channels, num_channels)
        self.bn1 = nn.BatchNorm2d(num_channels, eps=1e-4)
        self.relu = nn.ReLU(inplace=True)
        self.conv2 = conv3x3(num_channels, num_channels)
        self.bn2 = nn.BatchNorm2d(num_channels, eps=1e-4)

    def forward(self, x):
        identity = x
        out = self.relu(self.bn1(self.conv1(x)))
        out = self.bn2(self.conv2(out))
        out += identity
        return self.relu(out)

class RepresentationNetwork(nn.Module):
    def __init__(self, observation_shape, num_blocks, num_channels):
        super().__init__()
        self.conv = conv3x3(observation_shape[0], num_channels)
        self.bn = nn.BatchNorm2d(num_channels, eps=1e-4)
        self.resblocks = nn.Sequential(*[EvarResBlock(num_channels) for _ in range(num_blocks)])
    def forward(self, x):
        return self.resblocks(F.relu(self.bn(self.conv(x))))

class PolicyHead(nn.Module):
    """Separate origin and destination planes feed one logit per (from, to) move."""
    def __init__(self, num_channels, board_size, policy_output_size):
        super().__init__()
        self.policy_conv = nn.Conv2d(num_channels, 2, kernel_size=1)
        self.policy_bn = nn.BatchNorm2d(2, eps=1e-4)
        self.policy_fc = nn.Linear(2 * board_size * board_size, policy_output_size)
    def forward(self, x):
        p = F.relu(self.policy_bn(self.policy_conv(x))).view(x.size(0), -1)
        return self.policy_fc(p)

class MovePolicyNet(nn.Module):
    def __init__(self, config_obj):
        super().__init__()
        self.board_size = config_obj.BOARD_SIZE
        self.action_space_size = config_obj.ACTION_SPACE_SIZE
        self.observation_shape = (config_obj.NUM_PIECE_PLANES, self.board_size, self.board_size)

        self.representation_net = RepresentationNetwork(self.observation_shape, config_obj.NUM_RES_BLOCKS, config_obj.NUM_FILTERS)
        self.policy_net = PolicyHead(config_obj.NUM_FILTERS, self.board_size, self.action_space_size)

        for m in self.modules():
            if isinstance(m, EvarResBlock): nn.init.constant_(m.bn2.weight, 0)

    def forward(self, obs):
        return self.policy_net(self.representation_net(obs))

    @torch.no_grad()
    def move_probabilities(self, obs):
        self.eval()
        return F.softmax(self.forward(obs), dim=1)
