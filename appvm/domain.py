"""Libvirt domain XML generation for appvm."""

from __future__ import annotations

from xml.etree.ElementTree import Element, SubElement, tostring

from appvm.models import DomainDescriptor


def _element_to_str(root: Element) -> str:
    """Serialize an ElementTree element to a pretty-printed XML string without declaration."""
    from xml.dom.minidom import parseString

    raw = tostring(root, encoding="unicode")
    return parseString(raw).documentElement.toprettyxml(indent="  ").strip()


def kernel_cmdline(desc: DomainDescriptor) -> str:
    return f"loglevel=4 init={desc.system_path}/init regInfo={desc.reginfo_path} console=ttyS0"


def _add_share(devices: Element, source: str, tag: str, readonly: bool = False) -> None:
    fs = SubElement(devices, "filesystem", type="mount", accessmode="passthrough")
    SubElement(fs, "source", dir=source)
    SubElement(fs, "target", dir=tag)
    if readonly:
        SubElement(fs, "readonly")


def render_domain_xml(desc: DomainDescriptor, domain_type: str = "kvm") -> str:
    """Render the libvirt definition for one application VM."""
    domain = Element("domain", type=domain_type)
    SubElement(domain, "name").text = desc.name
    SubElement(domain, "memory", unit="MiB").text = str(desc.memory_mb)
    SubElement(domain, "currentMemory", unit="MiB").text = str(desc.memory_mb)
    SubElement(domain, "vcpu", placement="static").text = str(desc.cpus)

    os_el = SubElement(domain, "os")
    SubElement(os_el, "type", arch="x86_64").text = "hvm"
    SubElement(os_el, "kernel").text = str(desc.system_path / "kernel")
    SubElement(os_el, "initrd").text = str(desc.system_path / "initrd")
    SubElement(os_el, "cmdline").text = kernel_cmdline(desc)

    features = SubElement(domain, "features")
    SubElement(features, "acpi")
    SubElement(features, "apic")
    SubElement(domain, "cpu", mode="host-passthrough")
    SubElement(domain, "on_poweroff").text = "destroy"
    SubElement(domain, "on_reboot").text = "restart"
    SubElement(domain, "on_crash").text = "destroy"

    devices = SubElement(domain, "devices")

    # Guest writes go to a throwaway overlay; the base image is never modified.
    disk = SubElement(devices, "disk", type="file", device="disk")
    SubElement(disk, "driver", name="qemu", type="qcow2")
    SubElement(disk, "source", file=str(desc.disk_image_path))
    SubElement(disk, "target", dev="vda", bus="virtio")
    SubElement(disk, "transient")

    _add_share(devices, "/nix/store", "nix-store", readonly=True)
    shared = str(desc.shared_dir)
    for tag in ("xchg", "shared", "home"):
        _add_share(devices, shared, tag)

    iface = SubElement(devices, "interface", type="user")
    SubElement(iface, "model", type="virtio")

    serial = SubElement(devices, "serial", type="pty")
    SubElement(serial, "target", port="0")
    console = SubElement(devices, "console", type="pty")
    SubElement(console, "target", type="serial", port="0")

    spice = SubElement(devices, "channel", type="spicevmc")
    SubElement(spice, "target", type="virtio", name="com.redhat.spice.0")
    agent = SubElement(devices, "channel", type="unix")
    SubElement(agent, "target", type="virtio", name="org.qemu.guest_agent.0")

    graphics = SubElement(devices, "graphics", type="spice", autoport="yes")
    SubElement(graphics, "image", compression="off")
    video = SubElement(devices, "video")
    SubElement(video, "model", type="qxl", heads="1")
    SubElement(devices, "sound", model="ich6")

    balloon = SubElement(devices, "memballoon", model="virtio")
    SubElement(balloon, "stats", period="1")

    return _element_to_str(domain)
